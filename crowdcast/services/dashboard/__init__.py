from .client import DashboardPublisher

__all__ = ["DashboardPublisher"]
