import asyncio
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from lecture_qa.config import Settings
    from lecture_qa.services.manager import ServicesManager

# -------------------------------------------------------------- #
# Context Class
# -------------------------------------------------------------- #


class Context:
    """
    Central context object that provides access to the settings and
    the services manager.

    This allows all services to reach each other without circular
    dependencies or passing multiple objects individually.
    """

    def __init__(self, settings: "Settings | None" = None):
        self.settings: Settings | None = settings
        self.services_manager: ServicesManager | None = None
        self._shutting_down: bool = False
        self._shutdown_event: asyncio.Event | None = None

    def set_settings(self, settings: "Settings") -> None:
        """Set the runtime settings."""
        self.settings = settings

    def set_services_manager(self, services_manager: "ServicesManager") -> None:
        """Set the services manager instance."""
        self.services_manager = services_manager

    def is_shutting_down(self) -> bool:
        """Check if the application is shutting down."""
        return self._shutting_down

    def mark_shutdown_started(self) -> None:
        """Mark that shutdown has been initiated."""
        self._shutting_down = True
        self.wait_for_shutdown().set()

    def wait_for_shutdown(self) -> asyncio.Event:
        """Get the shutdown event for services to monitor."""
        # created lazily so a Context can be built outside a running loop
        if self._shutdown_event is None:
            self._shutdown_event = asyncio.Event()
        return self._shutdown_event
