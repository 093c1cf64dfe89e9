from .ai import AIClient, InsightsTracker, PlanTimeoutError
from .coordinator import AppCoordinator
from .legacy import LegacyStorage
from .storage import PersistenceClient, SaveError
from .stores import AISettingsStore, MemberStore, ProjectStore, TimeLogStore
