import logging
import os
import pwd
import subprocess
from typing import Callable, Optional

from config import settings
from config_store import ConfigStore
from errors import DataDirectoryError, UserCreationError, UserLookupError
from models import SystemUser

def lookup_user(username: str, lookup: Callable = pwd.getpwnam) -> SystemUser:
    """
    Look up a user in the OS user directory.
    Raises KeyError when the user does not exist, OSError for anything else.
    """
    entry = lookup(username)
    return SystemUser(
        username=entry.pw_name,
        uid=entry.pw_uid,
        gid=entry.pw_gid,
    )

class SystemIdentity:
    """
    Makes sure the CosmicPanel service account exists. The account owns
    everything in the data directory and is used inside containers, so
    files not owned by it cause permission problems on mount points.
    """

    def __init__(
        self,
        store: ConfigStore,
        logger: Optional[logging.Logger] = None,
        lookup: Callable = pwd.getpwnam,
        runner: Callable = subprocess.run,
        chown: Callable = os.chown,
        shell: Optional[str] = None,
    ):
        self.store = store
        self.logger = logger or logging.getLogger(__name__)
        self.lookup = lookup
        self.runner = runner
        self.chown = chown
        self.shell = shell or settings.SERVICE_SHELL

    @property
    def username(self) -> str:
        return self.store.configuration.system.username

    def ensure_user(self) -> SystemUser:
        """
        Resolve the configured service account, creating it if it does not
        exist, and persist its uid/gid before returning.
        """
        try:
            user = self._lookup()
        except KeyError:
            user = None

        if user is None:
            self._create_user()
            try:
                user = self._lookup()
            except KeyError as e:
                raise UserLookupError(
                    f"User {self.username} still unknown after creation"
                ) from e

        self.store.set_system_user(user)
        self.logger.info("Using system user %s (uid=%d, gid=%d)", user.username, user.uid, user.gid)
        return user

    def _lookup(self) -> SystemUser:
        # Only an unknown user (KeyError) may lead to account creation
        try:
            return lookup_user(self.username, self.lookup)
        except OSError as e:
            raise UserLookupError(f"Unable to look up user {self.username}: {e}") from e

    def _create_user(self):
        command = [
            "useradd",
            "--system",
            "--no-create-home",
            "--shell",
            self.shell,
            self.username,
        ]
        self.logger.info("Creating system user %s", self.username)

        try:
            self.runner(command, check=True, capture_output=True)
        except subprocess.CalledProcessError as e:
            stderr = e.stderr.decode(errors="replace").strip() if e.stderr else ""
            raise UserCreationError(
                f"useradd failed for {self.username} (exit {e.returncode}): {stderr}"
            ) from e
        except OSError as e:
            raise UserCreationError(f"Unable to run useradd for {self.username}: {e}") from e

    def ensure_data_directory(self, user: SystemUser) -> str:
        """Create the data directory if needed and hand it to the service account."""
        path = self.store.configuration.system.data

        try:
            os.makedirs(path, exist_ok=True)
            self.chown(path, user.uid, user.gid)
        except OSError as e:
            raise DataDirectoryError(f"Unable to prepare data directory {path}: {e}") from e

        self.logger.debug("Data directory %s owned by %s", path, user.username)
        return path
