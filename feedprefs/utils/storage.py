"""
Preference storage.

Durable persistence of each profile's preferred and blocked topic sets,
one JSON file per profile.
"""

import json
import os
import re
import shutil
import logging
import tempfile
from datetime import datetime, timezone

import config.settings as settings
from feedprefs.errors import StoreUnavailable
from feedprefs.models.preference_set import PreferenceSet

logger = logging.getLogger(__name__)

_PROFILE_ID_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class PreferenceStore:
    """
    Reads and writes PreferenceSets under a root directory.

    Files:
    - <root>/<profile_id>.json         current preferences
    - <root>/<profile_id>.json.backup  previous version, kept by every save

    Writes go to a temp file in the same directory and are moved into place
    with os.replace, so a reader sees either the old or the new file.
    """

    def __init__(self, root: str):
        """
        Initialize preference store.

        Args:
            root: Directory holding one JSON file per profile
        """
        self.root = str(root)
        os.makedirs(self.root, exist_ok=True)
        logger.info(f"Initialized PreferenceStore with root={self.root}")

    def path_for(self, profile_id: str) -> str:
        """Path of the profile's preference file."""
        if not profile_id or not _PROFILE_ID_RE.match(profile_id) or profile_id.startswith("."):
            raise ValueError(f"Invalid profile id: {profile_id!r}")
        return os.path.join(self.root, f"{profile_id}.json")

    def load(self, profile_id: str) -> PreferenceSet:
        """
        Load a profile's preferences.

        Args:
            profile_id: Viewer profile identifier

        Returns:
            The stored PreferenceSet, or an empty one if the profile was never saved

        Raises:
            StoreUnavailable: If the file exists but cannot be read or parsed,
                and no usable backup exists
        """
        path = self.path_for(profile_id)

        if not os.path.exists(path):
            logger.debug(f"No preferences stored for profile '{profile_id}', starting empty")
            return PreferenceSet.empty()

        try:
            prefs = self._read(path)
            logger.debug(
                f"Loaded preferences for '{profile_id}': "
                f"{len(prefs.preferred)} preferred, {len(prefs.blocked)} blocked"
            )
            return prefs
        except OSError as e:
            logger.error(f"Failed to read preferences for '{profile_id}': {e}")
            raise StoreUnavailable(profile_id, str(e), e) from e
        except (ValueError, TypeError, KeyError) as e:
            # json.JSONDecodeError and InvalidTopic are ValueErrors
            logger.error(f"Corrupt preferences file for '{profile_id}': {e}")
            return self._load_backup(profile_id, path, e)

    def save(self, profile_id: str, prefs: PreferenceSet) -> None:
        """
        Persist a profile's preferences with the atomic write pattern.
        Creates a backup of the previous file before replacing it.

        Args:
            profile_id: Viewer profile identifier
            prefs: Preferences to store

        Raises:
            StoreUnavailable: If the file cannot be written
        """
        path = self.path_for(profile_id)

        data = {
            "version": settings.STORE_FORMAT_VERSION,
            "profile_id": profile_id,
            "last_updated": datetime.now(timezone.utc).isoformat(),
            **prefs.to_dict()
        }

        temp_path = None
        try:
            if os.path.exists(path):
                shutil.copy(path, f"{path}.backup")

            fd, temp_path = tempfile.mkstemp(
                dir=self.root, prefix=f".{profile_id}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())

            os.replace(temp_path, path)
            temp_path = None
            logger.info(
                f"Preferences saved for '{profile_id}': "
                f"{len(prefs.preferred)} preferred, {len(prefs.blocked)} blocked"
            )

        except OSError as e:
            logger.error(f"Failed to save preferences for '{profile_id}': {e}")
            raise StoreUnavailable(profile_id, str(e), e) from e

        finally:
            if temp_path and os.path.exists(temp_path):
                os.remove(temp_path)

    def _read(self, path: str) -> PreferenceSet:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        if not isinstance(data, dict):
            raise ValueError("preferences file must hold a JSON object")
        for key in ("preferred", "blocked"):
            if not isinstance(data.get(key, []), list):
                raise ValueError(f"'{key}' must be a list")

        return PreferenceSet.from_dict(data)

    def _load_backup(self, profile_id: str, path: str, error: Exception) -> PreferenceSet:
        """Fall back to the backup file when the main file is corrupted."""
        backup_path = f"{path}.backup"
        if not os.path.exists(backup_path):
            raise StoreUnavailable(profile_id, f"corrupt file and no backup: {error}", error)

        logger.warning(f"Attempting to restore preferences from backup: {backup_path}")
        try:
            prefs = self._read(backup_path)
        except (OSError, ValueError, TypeError, KeyError) as e:
            logger.error(f"Backup restoration failed for '{profile_id}': {e}")
            raise StoreUnavailable(profile_id, f"corrupt file and unusable backup: {e}", e) from e

        logger.info(f"Restored preferences for '{profile_id}' from backup")
        return prefs
