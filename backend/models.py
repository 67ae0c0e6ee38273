from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Priority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class Status(str, Enum):
    TODO = "Todo"
    IN_PROGRESS = "In Progress"
    DONE = "Done"


class TaskDraft(BaseModel):
    """Structured task produced from free text, ready to hand to create_task."""
    title: str = Field(min_length=1, max_length=50)
    description: str
    deadline: date  # serialized as YYYY-MM-DD
    priority: Priority = Priority.MEDIUM
    status: Status = Status.TODO


class Task(BaseModel):
    id: str
    title: str
    description: str = ""
    deadline: str  # ISO format: YYYY-MM-DD (due_date column)
    status: Status
    priority: Priority
    position: int = 0
    board_id: str
    user_id: str
    created_at: str  # ISO format datetime string
    updated_at: str


class TaskCreate(BaseModel):
    title: str = Field(min_length=1)
    description: str = ""
    deadline: Optional[str] = None  # YYYY-MM-DD, defaults to today
    priority: Priority = Priority.MEDIUM
    status: Status = Status.TODO
    board_id: Optional[str] = None  # defaults to the user's default board


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    deadline: Optional[str] = None
    priority: Optional[Priority] = None
    status: Optional[Status] = None


class StatusUpdate(BaseModel):
    status: Status


class TaskMove(BaseModel):
    status: Status
    index: int = Field(ge=0)


class TaskColumns(BaseModel):
    todo: list[Task]
    in_progress: list[Task]
    done: list[Task]
    is_empty: bool


class Board(BaseModel):
    id: str
    name: str
    description: str = ""
    user_id: str
    created_at: str
    updated_at: str


class BoardCreate(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""


class BoardUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class ExtractRequest(BaseModel):
    description: str


class AITaskRequest(BaseModel):
    description: str
    board_id: Optional[str] = None


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    CANCELLED = "cancelled"
    SUSPENDED = "suspended"


class Subscription(BaseModel):
    user_id: str
    subscription_id: str
    plan_id: str
    status: SubscriptionStatus
    updated_at: str


class SubscriptionCreate(BaseModel):
    subscription_id: str = Field(min_length=1)
    plan_id: str = Field(min_length=1)


class TaskLimit(BaseModel):
    limit: int
    active: int
    reached: bool
