from __future__ import annotations

import math
import time
from dataclasses import dataclass

from chunked_upload.models.upload import UploadAttemptState, UploadPhase, UploadStrategy

PLANNING_SHARE = 30.0
TRANSFER_SHARE = 70.0


@dataclass(frozen=True)
class UploadStatusView:
    phase: UploadPhase
    progress: float
    message: str
    chunks_total: int = 0
    chunks_uploaded: int = 0
    chunks_failed: int = 0
    can_retry: bool = False
    retry_in: float | None = None
    suggestions: tuple[str, ...] = ()
    notice: str | None = None


def compute_progress(state: UploadAttemptState) -> float:
    if state.phase is UploadPhase.COMPLETE:
        return 100.0
    if state.phase is UploadPhase.IDLE:
        return 0.0
    if state.strategy is UploadStrategy.CHUNKED:
        if state.chunks_total == 0:
            return 0.0
        if state.phase is UploadPhase.PREPARING:
            value = PLANNING_SHARE * state.chunks_planned / state.chunks_total
        else:
            value = PLANNING_SHARE + TRANSFER_SHARE * state.chunks_uploaded / state.chunks_total
    elif state.strategy is UploadStrategy.STANDARD:
        value = float(state.standard_checkpoint)
    else:
        value = 0.0
    return max(0.0, min(100.0, value))


def retry_countdown(state: UploadAttemptState, now: float | None = None) -> float | None:
    if state.retry_deadline is None:
        return None
    now = time.monotonic() if now is None else now
    return max(0.0, state.retry_deadline - now)


def _message(state: UploadAttemptState, retry_in: float | None) -> str:
    phase = state.phase
    if phase is UploadPhase.IDLE:
        return ""
    if phase is UploadPhase.COMPLETE:
        return "Upload completed successfully!"
    if phase is UploadPhase.ERROR:
        return state.error.message if state.error else "Upload failed"
    if phase is UploadPhase.RETRYING:
        if retry_in is None:
            return "Retrying..."
        return f"Retrying in {math.ceil(retry_in)}s..."
    if state.waiting_for_connection:
        return "Waiting for connection..."
    if state.strategy is UploadStrategy.CHUNKED:
        if phase is UploadPhase.PREPARING:
            if state.chunks_total:
                return f"Creating {state.chunks_total} chunks..."
            return "Preparing upload..."
        if state.current_chunk is None:
            return "Starting chunk upload..."
        return f"Uploading chunk {state.current_chunk + 1}/{state.chunks_total}..."
    if state.standard_checkpoint >= 60:
        return "Processing on server..."
    if state.standard_checkpoint >= 20:
        return "Converting and uploading..."
    return "Preparing upload..."


def project_status(state: UploadAttemptState, now: float | None = None) -> UploadStatusView:
    retry_in = retry_countdown(state, now)
    error = state.error
    can_retry = state.phase is UploadPhase.RETRYING or (
        state.phase is UploadPhase.ERROR and error is not None and error.can_retry
    )
    return UploadStatusView(
        phase=state.phase,
        progress=compute_progress(state),
        message=_message(state, retry_in),
        chunks_total=state.chunks_total,
        chunks_uploaded=state.chunks_uploaded,
        chunks_failed=state.chunks_failed,
        can_retry=can_retry,
        retry_in=retry_in,
        suggestions=error.suggestions if error else (),
        notice=state.notice,
    )
