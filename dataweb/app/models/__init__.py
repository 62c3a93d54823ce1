from dataweb.app.models.user import User
from dataweb.app.models.dataset import Dataset
from dataweb.app.models.chat_history import ChatHistory

__all__ = ["User", "Dataset", "ChatHistory"]
