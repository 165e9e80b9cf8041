"""
AssistantService

Purpose: Turn user text into assistant text through the OpenAI Assistants API
(v2) while keeping one durable thread per Discord user.

Protocol:
1. get_or_create_conversation: store lookup, POST /threads on miss, persist
2. append_user_message: POST /threads/{id}/messages (role=user)
3. run_to_completion: POST /threads/{id}/runs, poll GET .../runs/{run_id}
   until terminal, then GET .../messages?run_id=...&order=desc&limit=1

Callers must not start two runs on the same thread concurrently; the API
rejects new messages while a run is active and this client does not queue.
"""

import asyncio
from typing import Any, Dict, Optional

import httpx

from src.config.logging_config import get_logger
from src.config.settings import get_settings
from src.services.conversation_store import ConversationStore
from src.types.errors import AssistantTimeout, BackendUnavailable, NoResponse

logger = get_logger(__name__)

# Run statuses after which polling stops
RUN_TERMINAL_STATUSES = {"completed", "failed", "cancelled", "expired", "incomplete", "requires_action"}

# Statuses that leave the run occupying the thread unless cancelled
RUN_CANCELLABLE_STATUSES = {"queued", "in_progress", "requires_action"}


class AssistantService:
    """
    OpenAI Assistants client with per-user thread continuity.

    Usage:
        service = AssistantService(store=ConversationStore())

        thread_id = await service.get_or_create_conversation("123")
        await service.append_user_message(thread_id, "Hello")
        reply = await service.run_to_completion(thread_id, "asst_...", "alice")

        await service.close()
    """

    def __init__(
        self,
        store: Optional[ConversationStore] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_s: Optional[float] = None,
        poll_interval_s: Optional[float] = None,
        run_timeout_s: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize AssistantService.

        Args:
            store: User → thread store (defaults to a ConversationStore on the
                process-wide database)
            api_key: Override OPENAI_API_KEY
            base_url: Override OPENAI_BASE_URL
            timeout_s: HTTP timeout per request
            poll_interval_s: Delay between run status polls
            run_timeout_s: Deadline for a whole run
            client: Pre-built httpx client (tests inject a MockTransport)
        """
        settings = get_settings()

        self.store = store or ConversationStore()
        self.api_key = api_key or settings.openai_api_key
        self.base_url = (base_url or settings.openai_base_url).rstrip('/')
        self.timeout = timeout_s or settings.openai_timeout_s
        self.poll_interval = poll_interval_s or settings.run_poll_interval_s
        self.run_timeout = run_timeout_s or settings.run_timeout_s

        self._client: Optional[httpx.AsyncClient] = client

        logger.info(
            f"🤖 AssistantService initialized (url={self.base_url}, poll={self.poll_interval}s, "
            f"deadline={self.run_timeout}s)"
        )

    # Conversation protocol

    async def get_or_create_conversation(self, user_id: str) -> str:
        """
        Return the user's thread id, creating and persisting one on first use.

        Raises:
            BackendUnavailable: Store unreachable or thread creation failed.
                Nothing is persisted in that case.
        """
        try:
            thread_id = await self.store.get_conversation_id(user_id)
        except Exception as e:
            logger.error(f"⛑️ Error getting thread ID for user {user_id}: {e}", exc_info=True)
            raise BackendUnavailable(f"Thread store unavailable: {e}") from e

        if thread_id:
            return thread_id

        thread = await self._request("POST", "/threads", json={})
        thread_id = thread.get("id")
        if not thread_id:
            logger.error(f"⛑️ Invalid thread response structure: {thread}")
            raise BackendUnavailable("Thread creation returned no id")

        logger.info(f"🥝 Successfully created a new thread {thread_id} for user {user_id}")

        try:
            await self.store.set_conversation_id(user_id, thread_id)
        except Exception as e:
            logger.error(f"⛑️ Error saving thread ID for user {user_id}: {e}", exc_info=True)
            raise BackendUnavailable(f"Thread store unavailable: {e}") from e

        return thread_id

    async def append_user_message(self, thread_id: str, text: str) -> Dict[str, Any]:
        """
        Append a user message to the thread.

        Raises:
            BackendUnavailable: Transport or HTTP error (no retry)
        """
        message = await self._request(
            "POST",
            f"/threads/{thread_id}/messages",
            json={"role": "user", "content": text},
        )
        if not message.get("id"):
            logger.error(f"⛑️ Invalid message response structure: {message}")
            raise BackendUnavailable("Message creation returned no id")

        logger.info(f"🥝 Successfully added message to thread {thread_id}")
        return message

    async def run_to_completion(
        self,
        thread_id: str,
        assistant_id: str,
        address_as: str,
        language: Optional[str] = None,
    ) -> str:
        """
        Run the assistant on the thread and return its reply text.

        Args:
            thread_id: Assistants thread id
            assistant_id: Persona's assistant id
            address_as: Name the assistant should address the user by
            language: Optional language name to reply in

        Returns:
            Assistant reply text (untrimmed)

        Raises:
            BackendUnavailable: Transport or HTTP error
            NoResponse: Run ended in a non-completed status or produced no text
            AssistantTimeout: Run still active when the deadline passed
        """
        instructions = f"Please address the user as {address_as}."
        if language:
            instructions += f" Reply in {language}."

        logger.info(f"🥝 Run started with {assistant_id} for {address_as}")
        run = await self._request(
            "POST",
            f"/threads/{thread_id}/runs",
            json={"assistant_id": assistant_id, "additional_instructions": instructions},
        )
        run_id = run.get("id")
        if not run_id:
            logger.error(f"⛑️ Invalid run response structure: {run}")
            raise BackendUnavailable("Run creation returned no id")

        run = await self._poll_run(thread_id, run)
        status = run.get("status")
        logger.info(f"🥝 Run {run_id} finished with status: {status}")

        if status != "completed":
            if status in RUN_CANCELLABLE_STATUSES:
                await self._cancel_run(thread_id, run_id)
            error = (run.get("last_error") or {}).get("message", "no details")
            logger.error(f"⛑️ Run {run_id} did not complete ({status}): {error}")
            raise NoResponse(f"Run {run_id} ended with status '{status}'")

        return await self._latest_reply(thread_id, run_id)

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        logger.info("🤖 AssistantService closed")

    # Internal methods

    async def _poll_run(self, thread_id: str, run: Dict[str, Any]) -> Dict[str, Any]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.run_timeout
        run_id = run["id"]
        polls = 0

        while run.get("status") not in RUN_TERMINAL_STATUSES:
            if loop.time() >= deadline:
                logger.error(f"⛑️ Run {run_id} exceeded {self.run_timeout}s (status={run.get('status')})")
                await self._cancel_run(thread_id, run_id)
                raise AssistantTimeout(f"Run {run_id} did not finish within {self.run_timeout}s")

            await asyncio.sleep(self.poll_interval)
            run = await self._request("GET", f"/threads/{thread_id}/runs/{run_id}")
            polls += 1
            logger.trace(f"🔍 Run {run_id} poll #{polls}: {run.get('status')}")

        return run

    async def _latest_reply(self, thread_id: str, run_id: str) -> str:
        messages = await self._request(
            "GET",
            f"/threads/{thread_id}/messages",
            params={"limit": 1, "order": "desc", "run_id": run_id},
        )
        data = messages.get("data") or []
        if not data:
            logger.warning("⚠️ No messages found in the thread.")
            raise NoResponse(f"Run {run_id} produced no messages")

        for part in data[0].get("content") or []:
            if part.get("type") == "text":
                value = (part.get("text") or {}).get("value", "")
                if value.strip():
                    logger.info("🥝 Retrieved latest message from thread.")
                    return value

        logger.warning(f"⚠️ Latest message of run {run_id} has no text content")
        raise NoResponse(f"Run {run_id} produced an empty reply")

    async def _cancel_run(self, thread_id: str, run_id: str) -> None:
        try:
            await self._request("POST", f"/threads/{thread_id}/runs/{run_id}/cancel")
            logger.info(f"🛑 Cancelled run {run_id}")
        except BackendUnavailable as e:
            logger.warning(f"⚠️ Could not cancel run {run_id}: {e}")

    async def _ensure_client(self) -> httpx.AsyncClient:
        """
        Lazy initialization of HTTP client with connection pooling.

        Returns:
            Configured httpx.AsyncClient instance
        """
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            )
        return self._client

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "OpenAI-Beta": "assistants=v2",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        """
        Send one API request and return the decoded JSON body.

        Raises:
            BackendUnavailable: Timeout, connection or HTTP status error
        """
        client = await self._ensure_client()
        url = f"{self.base_url}{path}"

        try:
            response = await client.request(method, url, headers=self._headers(), **kwargs)
            response.raise_for_status()
            return response.json()

        except httpx.TimeoutException as e:
            logger.error(f"⛑️ OpenAI timeout on {method} {path}: {e}")
            raise BackendUnavailable(f"OpenAI request timeout: {e}") from e

        except httpx.HTTPStatusError as e:
            logger.error(f"⛑️ OpenAI HTTP error {e.response.status_code} on {method} {path}: {e.response.text[:200]}")
            raise BackendUnavailable(f"OpenAI HTTP error: {e.response.status_code}") from e

        except httpx.RequestError as e:
            logger.error(f"⛑️ OpenAI connection error on {method} {path}: {e}")
            raise BackendUnavailable(f"OpenAI connection error: {e}") from e

        except ValueError as e:
            logger.error(f"⛑️ OpenAI returned invalid JSON on {method} {path}: {e}")
            raise BackendUnavailable(f"OpenAI invalid response: {e}") from e


# Singleton instance
_assistant_service: Optional[AssistantService] = None


def get_assistant_service() -> AssistantService:
    """
    Get singleton AssistantService instance.

    Returns:
        Initialized AssistantService instance
    """
    global _assistant_service
    if _assistant_service is None:
        _assistant_service = AssistantService()
    return _assistant_service
