"""
Lending system wiring and the FastAPI dependency that exposes it
"""

from typing import Optional

from ..calendars import InMemoryCalendarService
from ..config import LendingConfig, get_config
from ..loans import LoanManager
from ..products import LoanProductEngine
from ..storage import InMemoryStorage, StorageInterface


class LendingSystem:
    """Lending core with all components initialized"""

    def __init__(self, storage: Optional[StorageInterface] = None,
                 config: Optional[LendingConfig] = None):
        self.config = config or get_config()
        self.storage = storage or InMemoryStorage()
        self.calendar_service = InMemoryCalendarService()
        self.product_engine = LoanProductEngine(self.storage)
        self.loan_manager = LoanManager(
            self.storage,
            self.product_engine,
            calendar_service=self.calendar_service,
            config=self.config
        )


# Global lending system instance
lending_system = LendingSystem()


# Dependency to get lending system
def get_lending_system() -> LendingSystem:
    return lending_system
