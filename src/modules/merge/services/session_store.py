import logging
import threading
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Optional

from modules.common.errors import NotFoundError
from modules.merge.models.merge_session import (
    MergeResult, MergeSession, SessionState, StagedBlob,
)

logger = logging.getLogger(__name__)


class StagingSessionStore:
    """
    Sesiones de staging de merge, indexadas por session id.

    Each access sweeps expired sessions first; there is no timer thread.
    The store lives in process memory: with several worker processes a
    session has to be pinned to one worker, or this class replaced by a
    shared key-value store with native TTL keyed by session id.
    """

    def __init__(self, ttl: timedelta = timedelta(hours=1),
                 clock: Callable[[], datetime] = datetime.utcnow,
                 on_evict: Optional[Callable[[MergeSession], None]] = None):
        self.ttl = ttl
        self._clock = clock
        self._on_evict = on_evict
        self._lock = threading.RLock()
        self._sessions: dict[str, MergeSession] = {}
        self._results: dict[str, str] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def sweep(self) -> list[MergeSession]:
        now = self._clock()
        with self._lock:
            expired = [s for s in self._sessions.values() if s.expires_at <= now]
            for session in expired:
                self._drop(session.session_id)
                session.state = SessionState.EXPIRED
        for session in expired:
            logger.info("Merge session %s expired (created %s)", session.session_id,
                        session.created_at.isoformat())
            self._evict(session)
        return expired

    def _evict(self, session: MergeSession) -> None:
        if self._on_evict:
            try:
                self._on_evict(session)
            except Exception:
                logger.warning("Eviction callback failed for session %s",
                               session.session_id, exc_info=True)

    def _drop(self, session_id: str) -> Optional[MergeSession]:
        session = self._sessions.pop(session_id, None)
        if session and session.merge_result:
            self._results.pop(session.merge_result.result_id, None)
        return session

    def put(self, session_id: str, blob: StagedBlob) -> MergeSession:
        self.sweep()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                now = self._clock()
                session = MergeSession(session_id=session_id, created_at=now,
                                       expires_at=now + self.ttl)
                self._sessions[session_id] = session
                logger.info("Merge session %s created", session_id)
            # el mismo path re-subido reemplaza la entrada anterior
            session.staged_blobs = [
                b for b in session.staged_blobs if b.relative_path != blob.relative_path
            ] + [blob]
            return session

    def get(self, session_id: str) -> Optional[MergeSession]:
        self.sweep()
        with self._lock:
            return self._sessions.get(session_id)

    def require(self, session_id: str) -> MergeSession:
        session = self.get(session_id)
        if session is None:
            raise NotFoundError(f"Sesión {session_id} no encontrada o expirada")
        return session

    def delete(self, session_id: str) -> Optional[MergeSession]:
        self.sweep()
        with self._lock:
            return self._drop(session_id)

    def store_merge_result(self, session_id: str, result: MergeResult) -> MergeResult:
        """Reemplaza de forma atómica el resultado previo de la sesión."""
        self.sweep()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise NotFoundError(f"Sesión {session_id} no encontrada o expirada")
            if session.merge_result:
                self._results.pop(session.merge_result.result_id, None)
            session.merge_result = result
            session.state = SessionState.MERGED
            self._results[result.result_id] = session_id
        return result

    def _session_for_result(self, result_id: str) -> MergeSession:
        session_id = self._results.get(result_id)
        session = self._sessions.get(session_id) if session_id else None
        if session is None or session.merge_result is None \
                or session.merge_result.result_id != result_id:
            raise NotFoundError(f"Resultado de merge {result_id} no encontrado o expirado")
        return session

    def get_merge_result(self, result_id: str) -> MergeResult:
        self.sweep()
        with self._lock:
            return self._session_for_result(result_id).merge_result

    def take_merge_result(self, result_id: str) -> tuple[MergeSession, MergeResult]:
        """
        Read-then-delete under the lock, so a concurrent sweep or re-merge
        never observes a half-promoted session.
        """
        self.sweep()
        with self._lock:
            session = self._session_for_result(result_id)
            result = session.merge_result
            self._drop(session.session_id)
            snapshot = replace(session, state=SessionState.PROMOTED,
                               staged_blobs=list(session.staged_blobs))
        logger.info("Merge result %s claimed for promotion (session %s)",
                    result_id, snapshot.session_id)
        return snapshot, result

    def restore_claimed(self, claimed: MergeSession, result: MergeResult) -> None:
        """
        Devuelve al store una sesión reclamada cuya promoción falló.

        The result becomes resolvable again under the same id. If the session
        already expired meanwhile it is evicted right away; if the id was
        reused by a new staging session, the claimed blobs are folded into it
        and the old result is dropped.
        """
        now = self._clock()
        outcome = "restored"
        with self._lock:
            current = self._sessions.get(claimed.session_id)
            if current is not None:
                outcome = "merged into new session"
                known = {b.relative_path for b in current.staged_blobs}
                current.staged_blobs = current.staged_blobs + [
                    b for b in claimed.staged_blobs if b.relative_path not in known
                ]
            elif claimed.expires_at <= now:
                outcome = "expired"
            else:
                self._sessions[claimed.session_id] = replace(
                    claimed, state=SessionState.MERGED, merge_result=result,
                    staged_blobs=list(claimed.staged_blobs),
                )
                self._results[result.result_id] = claimed.session_id
        logger.info("Merge result %s after failed promotion: %s (session %s)",
                    result.result_id, outcome, claimed.session_id)
        if outcome == "expired":
            self._evict(replace(claimed, state=SessionState.EXPIRED))

    def discard_merge_result(self, result_id: str) -> None:
        self.sweep()
        with self._lock:
            session = self._session_for_result(result_id)
            self._results.pop(result_id, None)
            session.merge_result = None
            session.state = SessionState.STAGING
