from .link import LinkCreate, LinkResponse, LinkUpdate
from .analytics import LinkAnalytics

__all__ = ["LinkCreate", "LinkResponse", "LinkUpdate", "LinkAnalytics"]
