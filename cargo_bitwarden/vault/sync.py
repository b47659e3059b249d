"""Optional ``bw sync`` around vault reads and writes."""

from cargo_bitwarden.enums import SyncPhase
from cargo_bitwarden.exceptions import VaultAuthError, VaultGatewayError, VaultSyncError
from cargo_bitwarden.utils.logging_config import get_logger
from cargo_bitwarden.vault.gateway import VaultCommand
from cargo_bitwarden.vault.session import SessionManager

log = get_logger(__name__)


class SyncCoordinator:
    """Pulls remote vault state before reads and pushes after writes.

    Does nothing unless ``enabled``. A failed sync before a read only logs a
    warning, since the local copy can still answer. A failed sync after a
    write raises :class:`VaultSyncError` because the change may not have
    reached the server.

    Args:
        sessions: Session manager used to run ``bw sync``
        enabled: Whether syncing is turned on (the ``--sync`` argument)
    """

    def __init__(self, sessions: SessionManager, enabled: bool = False) -> None:
        self.sessions = sessions
        self.enabled = enabled
        self.sync_count = 0

    def maybe_sync(self, phase: SyncPhase) -> bool:
        """Sync if enabled.

        Args:
            phase: Whether this precedes a read or follows a write

        Returns:
            True if a sync ran and succeeded

        Raises:
            VaultSyncError: If a post-write sync fails
            VaultAuthError: If no session can be obtained
        """
        if not self.enabled:
            return False

        self.sync_count += 1
        try:
            self.sessions.run(VaultCommand("sync"))
        except VaultAuthError:
            raise
        except VaultGatewayError as e:
            if phase is SyncPhase.BEFORE_READ:
                log.warning("vault_sync_failed", phase=phase.value, error=e.message)
                return False
            raise VaultSyncError(
                f"Vault sync after write failed; the change may not have reached the server: {e.message}",
                subcommand="sync",
            ) from e

        log.debug("vault_synced", phase=phase.value)
        return True
