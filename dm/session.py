"""Interactive dialog session for a single action invocation

An action handler talks to the client exclusively through its session. The
transport only correlates by the id of the message that started the
invocation, so every outbound dialog message carries that id as ``origin``
and the session allows at most one unanswered message at a time:

    IDLE --primitive--> AWAITING_REPLY --reply--> IDLE | PROGRESS_OPEN
    PROGRESS_OPEN --update--> AWAITING_REPLY --reply--> PROGRESS_OPEN
    PROGRESS_OPEN --close--> AWAITING_REPLY --reply--> IDLE
    any --send_final_result / abort--> CLOSED
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from dm.errors import DialogBusy, DialogStateError, ProgressDialogClosed, SessionClosed
from dm.models import (
    DeviceManagementMessage,
    DialogType,
    JsonFormData,
    JsonFormSchema,
    LocalizedText,
)
from utils import get_logger


class SessionState(Enum):
    IDLE = "idle"
    AWAITING_REPLY = "awaiting_reply"
    PROGRESS_OPEN = "progress_open"
    CLOSED = "closed"


@dataclass
class ReplyTarget:
    """Where the next outbound message goes: the most recent inbound message of this conversation"""
    sender: Optional[str]
    command: str
    callback: Any

    @classmethod
    def from_message(cls, message: DeviceManagementMessage) -> "ReplyTarget":
        return cls(sender=message.sender, command=message.command, callback=message.callback)


def _progress_fields(**fields) -> Dict[str, Any]:
    return {key: value for key, value in fields.items() if value is not None}


class ProgressDialog:
    """Handle for an open progress dialog; only update() and close() are allowed while it is open"""

    def __init__(self, session: "DialogSession", fields: Dict[str, Any]):
        self._session = session
        self._fields = fields
        self.closed = False

    async def update(
        self,
        title: Optional[LocalizedText] = None,
        indeterminate: Optional[bool] = None,
        value: Optional[float] = None,
        label: Optional[LocalizedText] = None,
    ):
        self._session._check_progress(self)
        # Each update is sent relative to the values the dialog was opened with
        progress = {
            **self._fields,
            **_progress_fields(title=title, indeterminate=indeterminate, value=value, label=label),
            "open": True,
        }
        await self._session._exchange(
            DialogType.PROGRESS, {"progress": progress}, resume=SessionState.PROGRESS_OPEN
        )

    async def close(self):
        self._session._check_progress(self)
        await self._session._exchange(
            DialogType.PROGRESS, {"progress": {"open": False}}, resume=SessionState.IDLE
        )
        self.closed = True
        self._session._progress = None


class DialogSession:
    """Per-invocation interaction surface handed to action handlers"""

    def __init__(self, message: DeviceManagementMessage, transport):
        self.origin = message.id
        self.transport = transport
        self.logger = get_logger(__name__)

        self._reply_target: Optional[ReplyTarget] = ReplyTarget.from_message(message)
        self._state = SessionState.IDLE
        self._resume_state = SessionState.IDLE
        self._pending: Optional[asyncio.Future] = None
        self._progress: Optional[ProgressDialog] = None

        self.created_at = datetime.now(timezone.utc)
        self.last_activity = self.created_at

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_closed(self) -> bool:
        return self._state is SessionState.CLOSED

    @property
    def awaiting_reply(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def idle_seconds(self, now: Optional[datetime] = None) -> float:
        now = now or datetime.now(timezone.utc)
        return (now - self.last_activity).total_seconds()

    async def show_message(self, text: LocalizedText) -> None:
        self._check_can_open()
        await self._exchange(DialogType.MESSAGE, {"message": text})

    async def show_confirmation(self, text: LocalizedText) -> bool:
        self._check_can_open()
        reply = await self._exchange(DialogType.CONFIRM, {"confirm": text})
        return bool(reply.get("confirm"))

    async def show_form(
        self,
        schema: JsonFormSchema,
        data: Optional[JsonFormData] = None,
        title: Optional[LocalizedText] = None,
    ) -> Optional[JsonFormData]:
        """Ask the client to fill a form; None means the user cancelled"""
        self._check_can_open()
        form: Dict[str, Any] = {"schema": schema}
        if data is not None:
            form["data"] = data
        if title is not None:
            form["title"] = title
        reply = await self._exchange(DialogType.FORM, {"form": form})
        return reply.get("data")

    async def open_progress(
        self,
        title: LocalizedText,
        indeterminate: Optional[bool] = None,
        value: Optional[float] = None,
        label: Optional[LocalizedText] = None,
    ) -> ProgressDialog:
        self._check_can_open()
        fields = _progress_fields(title=title, indeterminate=indeterminate, value=value, label=label)
        dialog = ProgressDialog(self, fields)
        await self._exchange(
            DialogType.PROGRESS, {"progress": {**fields, "open": True}}, resume=SessionState.PROGRESS_OPEN
        )
        self._progress = dialog
        return dialog

    def deliver_reply(self, message: DeviceManagementMessage) -> bool:
        """Resume the handler waiting on this session; returns False if the message was ignored"""
        if not self.awaiting_reply:
            self.logger.debug("reply_ignored", origin=self.origin, reason="no_pending_dialog")
            return False
        if not isinstance(message.message, dict):
            # Plain notices (e.g. echoes of our own text) are not dialog replies
            self.logger.debug("reply_ignored", origin=self.origin, reason="not_a_reply")
            return False

        future = self._pending
        self._pending = None
        self._reply_target = ReplyTarget.from_message(message)
        self._state = self._resume_state
        self.last_activity = datetime.now(timezone.utc)
        future.set_result(message.message)
        return True

    def send_final_result(self, result: Dict[str, Any]):
        if self._state is SessionState.CLOSED:
            raise SessionClosed(self.origin)

        if self.awaiting_reply:
            self.logger.warning("dialog_abandoned", origin=self.origin)
            self._pending.cancel()
        self._pending = None
        self._state = SessionState.CLOSED

        if self._reply_target is None:
            self.logger.warning("final_result_dropped", origin=self.origin, reason="no_reply_target")
            return
        self._send(DialogType.RESULT, {"result": result})

    def abort(self, exc: Exception):
        """Close the session without a result, failing the pending dialog with exc"""
        if self._state is SessionState.CLOSED:
            return
        self._state = SessionState.CLOSED
        if self.awaiting_reply:
            self._pending.set_exception(exc)
        self._pending = None

    def _check_can_open(self):
        if self._state is SessionState.CLOSED:
            raise SessionClosed(self.origin)
        if self._state is SessionState.AWAITING_REPLY:
            raise DialogBusy()
        if self._state is SessionState.PROGRESS_OPEN:
            raise DialogBusy(
                "Can't show another dialog while a progress dialog is open. "
                "Call close() on the dialog before opening another one"
            )

    def _check_progress(self, dialog: ProgressDialog):
        if self._state is SessionState.CLOSED:
            raise SessionClosed(self.origin)
        if dialog.closed or dialog is not self._progress:
            raise ProgressDialogClosed()
        if self._state is SessionState.AWAITING_REPLY:
            raise DialogBusy()

    async def _exchange(
        self,
        dialog_type: DialogType,
        fields: Dict[str, Any],
        resume: SessionState = SessionState.IDLE,
    ) -> Dict[str, Any]:
        """Send one dialog message and wait for the client's reply payload"""
        previous_state = self._state
        future = asyncio.get_running_loop().create_future()
        self._pending = future
        self._resume_state = resume
        self._state = SessionState.AWAITING_REPLY

        try:
            self._send(dialog_type, fields)
        except Exception:
            self._pending = None
            self._state = previous_state
            raise

        return await future

    def _send(self, dialog_type: DialogType, fields: Dict[str, Any]):
        target = self._reply_target
        if target is None:
            raise DialogStateError("No outstanding message to reply to")

        payload = {**fields, "type": dialog_type.value, "origin": self.origin}
        self.transport.send(target.sender, target.command, payload, target.callback)
        # A reply callback can only be used once; the next reply brings a new one
        self._reply_target = None
        self.last_activity = datetime.now(timezone.utc)
        self.logger.debug("dialog_sent", origin=self.origin, type=dialog_type.value)


ActionContext = DialogSession
