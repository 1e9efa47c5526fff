"""Persistent connector profiles and one-time cookie import.

Each connector gets its own browser profile directory so logins survive
between runs. The first time a profile is used with the user's system
Chrome, the cookies from the user's real Chrome profile are merged into it.
Only system Chrome can decrypt those cookies (they are encrypted with the
same OS credential store entry), so the import is skipped for cached
Chromium builds.
"""

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from ..config import RunnerSettings
from ..models.run import ResolvedBrowser

if TYPE_CHECKING:
    from .launcher import BrowserLauncher

logger = logging.getLogger(__name__)


COOKIE_MARKER_NAME = ".cookies-imported"

# Relative locations of the cookie database inside a Chrome profile, newest first.
COOKIE_DB_LOCATIONS = (
    Path("Network") / "Cookies",
    Path("Cookies"),
)


def find_cookie_db(profile_dir: Path) -> Optional[Path]:
    """Locate the cookie database inside a Chrome profile directory."""
    for relative in COOKIE_DB_LOCATIONS:
        candidate = profile_dir / relative
        if candidate.is_file():
            return candidate
    return None


def merge_cookie_databases(target_db: Path, source_db: Path) -> int:
    """Merge every cookie row of ``source_db`` into ``target_db``.

    Rows are inserted with ``INSERT OR REPLACE`` so the cookie table's unique
    key decides which rows are replaced.

    Args:
        target_db: Cookie database of the runner's profile
        source_db: Cookie database of the user's Chrome profile

    Returns:
        Number of cookies in the target database after the merge

    Raises:
        SQLAlchemyError: If the databases cannot be attached or merged
    """
    engine = create_engine(f"sqlite:///{target_db}", poolclass=NullPool)
    try:
        with engine.connect() as conn:
            conn.execute(text("ATTACH DATABASE :source AS src"), {"source": str(source_db)})
            try:
                conn.execute(text("INSERT OR REPLACE INTO cookies SELECT * FROM src.cookies"))
                conn.commit()
            except SQLAlchemyError:
                conn.rollback()
                raise
            finally:
                conn.execute(text("DETACH DATABASE src"))
            return conn.execute(text("SELECT COUNT(*) FROM cookies")).scalar_one()
    finally:
        engine.dispose()


class ProfileManager:
    """Manages per-connector profiles and the cookie import guard."""

    def __init__(self, settings: RunnerSettings):
        self.settings = settings

    def profile_dir_for(self, connector_path: str) -> Path:
        """Stable profile directory derived from the connector file name."""
        connector_id = Path(connector_path).stem
        return self.settings.profiles_dir / connector_id

    @staticmethod
    def marker_path(profile_dir: Path) -> Path:
        return profile_dir / COOKIE_MARKER_NAME

    def needs_cookie_import(self, profile_dir: Path, browser: ResolvedBrowser) -> bool:
        """True when this profile has never had cookies imported and can."""
        return browser.is_system and not self.marker_path(profile_dir).exists()

    async def prepare(
        self,
        profile_dir: Path,
        browser: ResolvedBrowser,
        launcher: "BrowserLauncher",
    ) -> bool:
        """Create the profile directory and run the first-use cookie import.

        On first use the browser is launched once against the empty profile
        so it creates its own cookie database, then closed, and the user's
        cookies are inserted into that database. Failures are logged and the
        run continues without imported cookies.

        Args:
            profile_dir: Connector profile directory
            browser: Resolved browser executable
            launcher: Launcher used for the initialization launch

        Returns:
            True if the import ran and succeeded
        """
        profile_dir.mkdir(parents=True, exist_ok=True)

        if not self.needs_cookie_import(profile_dir, browser):
            if browser.is_system:
                logger.info("Skipping cookie import: already done")
            return False

        logger.info("First run: launching browser to initialize profile...")
        try:
            context = await launcher.launch(profile_dir, headless=True, browser=browser)
            await context.close()
        except Exception as e:
            logger.warning(f"Could not initialize profile for cookie import: {e}")
            return False

        logger.info("Profile initialized, importing cookies...")
        count = await asyncio.to_thread(self.import_system_cookies, profile_dir)
        return count is not None

    def source_profile_dir(self) -> Optional[Path]:
        """The user's last-used Chrome profile directory, if any."""
        chrome_root = self.settings.system_profile_root
        if chrome_root is None or not chrome_root.is_dir():
            return None

        local_state_path = chrome_root / "Local State"
        if local_state_path.is_file():
            try:
                local_state = json.loads(local_state_path.read_text(encoding="utf-8"))
                last_used = (local_state.get("profile") or {}).get("last_used")
                if last_used:
                    profile_dir = chrome_root / last_used
                    if profile_dir.is_dir():
                        logger.info(f'Chrome last-used profile: "{last_used}"')
                        return profile_dir
            except (OSError, ValueError, AttributeError) as e:
                logger.warning(f"Could not read Chrome Local State: {e}")

        default_dir = chrome_root / "Default"
        return default_dir if default_dir.is_dir() else None

    def import_system_cookies(self, profile_dir: Path) -> Optional[int]:
        """Merge the user's Chrome cookies into a runner profile.

        Writes the import marker on success. Never raises; problems are
        logged as warnings.

        Args:
            profile_dir: Runner profile directory (already initialized)

        Returns:
            Total cookie count after the import, or None if it did not run
        """
        marker = self.marker_path(profile_dir)
        if marker.exists():
            logger.info("Skipping cookie import: already done")
            return None

        source_profile = self.source_profile_dir()
        if source_profile is None:
            logger.info("No system Chrome profile found, skipping cookie import")
            return None

        source_db = find_cookie_db(source_profile)
        if source_db is None:
            logger.info(f"No cookie database in {source_profile}, skipping cookie import")
            return None

        target_db = find_cookie_db(profile_dir / "Default")
        if target_db is None:
            logger.info("Skipping cookie import: target Cookies db not found yet")
            return None

        try:
            count = merge_cookie_databases(target_db, source_db)
            marker.write_text(datetime.utcnow().isoformat(), encoding="utf-8")
        except (SQLAlchemyError, OSError) as e:
            logger.warning(f"Could not import Chrome cookies: {e}")
            return None

        logger.info(f"Imported cookies into profile, total cookies now: {count}")
        return count
