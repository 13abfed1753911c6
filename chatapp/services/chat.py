"""
Chat Service - Conversations, messages and the send-message transaction.

Send-message write order:
1. Insert user turn, bump conversation counters, debit one credit (one transaction)
2. Generate the reply (outside any transaction)
3. Insert assistant turn and bump counters again (second transaction)

The debit is a conditional UPDATE, so the balance cannot go negative under
concurrent sends. A failed generation is compensated: the user turn is
deleted, the counter bump reverted and the credit refunded.
"""

import time
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from chatapp.config import settings
from chatapp.db.models import Conversation, Message, User, utc_now
from chatapp.exceptions import (
    ConversationNotFoundError,
    GenerationError,
    InsufficientCreditsError,
    RequestValidationFailed,
)
from chatapp.models.api import MessageRole
from chatapp.models.domain import ChatTurn, ConversationSettings, GeneratedReply
from chatapp.observability import metrics, trace_operation
from chatapp.services.generation import ResponseGenerator

logger = get_logger(__name__)

CONVERSATION_LIST_LIMIT = 50
CREDITS_PER_TURN = 1


@dataclass(frozen=True)
class ChatExchange:
    """Result of a successful send: both turns and the caller's new balance."""

    user_message: Message
    ai_message: Message
    credits: int


class ChatService:
    """Conversation and message operations scoped to one user."""

    def __init__(self, db: AsyncSession, generator: ResponseGenerator) -> None:
        """Initialize chat service with database session and reply generator."""
        self.db = db
        self.generator = generator

    # ========================================================================
    # Conversations
    # ========================================================================

    async def list_conversations(
        self, user_id: UUID, limit: int = CONVERSATION_LIST_LIMIT
    ) -> list[Conversation]:
        """Active conversations of a user, most recently updated first."""
        stmt = (
            select(Conversation)
            .where(Conversation.user_id == user_id, Conversation.is_active.is_(True))
            .order_by(Conversation.updated_at.desc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def create_conversation(
        self,
        user_id: UUID,
        title: str,
        conversation_settings: ConversationSettings | None = None,
    ) -> Conversation:
        """Create an empty conversation."""
        conversation_settings = conversation_settings or ConversationSettings()
        now = utc_now()
        conversation = Conversation(
            user_id=user_id,
            title=title,
            is_active=True,
            model=conversation_settings.model,
            temperature=conversation_settings.temperature,
            max_tokens=conversation_settings.max_tokens,
            message_count=0,
            total_tokens=0,
            last_message_at=now,
            created_at=now,
            updated_at=now,
        )
        self.db.add(conversation)
        await self.db.commit()
        await self.db.refresh(conversation)

        logger.info(
            "conversation_created", conversation_id=str(conversation.id), user_id=str(user_id)
        )
        return conversation

    async def update_conversation(
        self, user_id: UUID, conversation_id: UUID, title: str | None
    ) -> Conversation:
        """
        Rename an active conversation.

        Raises:
            RequestValidationFailed: Title missing or blank (INVALID_TITLE)
            ConversationNotFoundError: Not owned, missing or inactive
        """
        if title is None or not title.strip():
            raise RequestValidationFailed(message="Title is required", code="INVALID_TITLE")

        conversation = await self._get_owned_conversation(user_id, conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)

        conversation.title = title.strip()
        conversation.updated_at = utc_now()
        await self.db.commit()
        await self.db.refresh(conversation)
        return conversation

    async def delete_conversation(self, user_id: UUID, conversation_id: UUID) -> None:
        """Soft-delete a conversation; messages are kept."""
        conversation = await self._get_owned_conversation(
            user_id, conversation_id, active_only=False
        )
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)

        conversation.is_active = False
        await self.db.commit()
        logger.info("conversation_deleted", conversation_id=str(conversation_id))

    # ========================================================================
    # Messages
    # ========================================================================

    async def list_messages(
        self, user_id: UUID, conversation_id: UUID, page: int = 1, limit: int = 50
    ) -> tuple[list[Message], int]:
        """
        One page of a conversation's turns in creation order, plus the total.

        Soft-deleted conversations stay readable by id.
        """
        conversation = await self._get_owned_conversation(
            user_id, conversation_id, active_only=False
        )
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)

        stmt = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.asc(), Message.id.asc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        messages = list(result.scalars().all())

        count_stmt = select(func.count(Message.id)).where(
            Message.conversation_id == conversation_id
        )
        total = (await self.db.execute(count_stmt)).scalar_one()
        return messages, total

    async def send_message(
        self, user: User, conversation_id: UUID, content: str
    ) -> ChatExchange:
        """
        Persist a user turn, generate and persist the reply, debit one credit.

        Raises:
            InsufficientCreditsError: Balance below one credit (checked before any write)
            ConversationNotFoundError: Not owned, missing or inactive
            GenerationError: Reply generation failed; all writes were compensated
        """
        if user.credits < CREDITS_PER_TURN:
            metrics.insufficient_credits_total.inc()
            metrics.record_message_sent(False, "insufficient_credits")
            raise InsufficientCreditsError(user.credits, CREDITS_PER_TURN)

        conversation = await self._get_owned_conversation(user.id, conversation_id)
        if conversation is None:
            metrics.record_message_sent(False, "conversation_not_found")
            raise ConversationNotFoundError(conversation_id)

        conversation_settings = ConversationSettings(
            model=conversation.model,
            temperature=conversation.temperature,
            max_tokens=conversation.max_tokens,
        )
        previous_last_message_at = conversation.last_message_at

        with trace_operation(
            "send_message", conversation_id=str(conversation_id), user_id=str(user.id)
        ) as span:
            # Transaction 1: user turn + counters + conditional debit
            user_message = Message(
                conversation_id=conversation_id,
                user_id=user.id,
                content=content,
                role=MessageRole.USER.value,
                tokens=0,
                processing_time_ms=0,
                is_edited=False,
                created_at=utc_now(),
            )
            self.db.add(user_message)
            await self.db.flush()
            await self._bump_counters(conversation_id, messages=1)

            balance = await self._debit_credit(user.id)
            if balance is None:
                await self.db.rollback()
                metrics.insufficient_credits_total.inc()
                metrics.record_message_sent(False, "insufficient_credits")
                logger.info("send_message_debit_rejected", user_id=str(user.id))
                raise InsufficientCreditsError(0, CREDITS_PER_TURN)

            await self.db.commit()
            metrics.credits_debited_total.inc(CREDITS_PER_TURN)

            history = await self._recent_history(conversation_id, exclude_id=user_message.id)

            started = time.perf_counter()
            try:
                reply = await self.generator.generate(content, history, conversation_settings)
            except Exception as e:
                metrics.generation_failures_total.labels(generator=self.generator.name).inc()
                metrics.record_message_sent(False, "generation_failed")
                logger.error(
                    "generation_failed",
                    conversation_id=str(conversation_id),
                    user_id=str(user.id),
                    generator=self.generator.name,
                    error=str(e),
                )
                await self._compensate(
                    user.id, conversation_id, user_message.id, previous_last_message_at
                )
                if isinstance(e, GenerationError):
                    raise
                raise GenerationError(str(e)) from e

            metrics.record_generation(
                self.generator.name, time.perf_counter() - started, reply.tokens
            )

            # Transaction 2: assistant turn + counters
            ai_message = self._assistant_message(
                user.id, conversation_id, conversation_settings, reply
            )
            self.db.add(ai_message)
            await self.db.flush()
            await self._bump_counters(conversation_id, messages=1, tokens=reply.tokens)
            await self.db.commit()

            span.set_attribute("tokens", reply.tokens)
            span.set_attribute("credits_remaining", balance)

        metrics.record_message_sent(True)
        logger.info(
            "message_sent",
            conversation_id=str(conversation_id),
            user_id=str(user.id),
            tokens=reply.tokens,
            processing_time_ms=reply.processing_time_ms,
            credits_remaining=balance,
        )
        return ChatExchange(user_message=user_message, ai_message=ai_message, credits=balance)

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    async def _get_owned_conversation(
        self, user_id: UUID, conversation_id: UUID, active_only: bool = True
    ) -> Conversation | None:
        """Find a conversation owned by user_id."""
        stmt = select(Conversation).where(
            Conversation.id == conversation_id,
            Conversation.user_id == user_id,
        )
        if active_only:
            stmt = stmt.where(Conversation.is_active.is_(True))
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _debit_credit(self, user_id: UUID) -> int | None:
        """
        Atomically debit one credit.

        Returns the new balance, or None when the balance was already below one.
        """
        stmt = (
            update(User)
            .where(User.id == user_id, User.credits >= CREDITS_PER_TURN)
            .values(credits=User.credits - CREDITS_PER_TURN, updated_at=utc_now())
            .returning(User.credits)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _bump_counters(
        self,
        conversation_id: UUID,
        messages: int,
        tokens: int = 0,
        last_message_at: datetime | None = None,
    ) -> None:
        """Adjust aggregate counters in SQL so concurrent sends do not lose updates."""
        now = utc_now()
        await self.db.execute(
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(
                message_count=Conversation.message_count + messages,
                total_tokens=Conversation.total_tokens + tokens,
                last_message_at=last_message_at or now,
                updated_at=now,
            )
        )

    async def _recent_history(self, conversation_id: UUID, exclude_id: UUID) -> list[ChatTurn]:
        """Trailing window of prior turns, oldest first."""
        stmt = (
            select(Message)
            .where(Message.conversation_id == conversation_id, Message.id != exclude_id)
            .order_by(Message.created_at.desc())
            .limit(settings.ai_history_turns)
        )
        result = await self.db.execute(stmt)
        rows = list(result.scalars().all())
        rows.reverse()
        return [ChatTurn(role=MessageRole(row.role), content=row.content) for row in rows]

    async def _compensate(
        self,
        user_id: UUID,
        conversation_id: UUID,
        user_message_id: UUID,
        previous_last_message_at: datetime | None,
    ) -> None:
        """Undo transaction 1 after a failed generation."""
        try:
            await self.db.execute(delete(Message).where(Message.id == user_message_id))
            await self._bump_counters(
                conversation_id, messages=-1, last_message_at=previous_last_message_at
            )
            await self.db.execute(
                update(User)
                .where(User.id == user_id)
                .values(credits=User.credits + CREDITS_PER_TURN, updated_at=utc_now())
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.exception(
                "send_message_compensation_failed",
                conversation_id=str(conversation_id),
                user_message_id=str(user_message_id),
            )
            raise

        metrics.credits_refunded_total.inc(CREDITS_PER_TURN)
        logger.info(
            "send_message_compensated",
            conversation_id=str(conversation_id),
            user_id=str(user_id),
        )

    def _assistant_message(
        self,
        user_id: UUID,
        conversation_id: UUID,
        conversation_settings: ConversationSettings,
        reply: GeneratedReply,
    ) -> Message:
        return Message(
            conversation_id=conversation_id,
            user_id=user_id,
            content=reply.content,
            role=MessageRole.ASSISTANT.value,
            tokens=reply.tokens,
            model=conversation_settings.model,
            temperature=conversation_settings.temperature,
            processing_time_ms=reply.processing_time_ms,
            is_edited=False,
            created_at=utc_now(),
        )
