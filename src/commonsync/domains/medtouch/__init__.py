"""MedTouch CRM import pipelines.

Importing this package registers every pipeline with
``commonsync.framework.registry``.
"""

from commonsync.domains.medtouch.events import EventsPipeline
from commonsync.domains.medtouch.quizzes import QuizzesPipeline
from commonsync.domains.medtouch.registered_users import RegisteredUsersPipeline
from commonsync.domains.medtouch.sessions import ActionSessionsPipeline
from commonsync.domains.medtouch.touches import TouchesPipeline
from commonsync.domains.medtouch.users import UsersPipeline

__all__ = [
    "ActionSessionsPipeline",
    "EventsPipeline",
    "QuizzesPipeline",
    "RegisteredUsersPipeline",
    "TouchesPipeline",
    "UsersPipeline",
]
