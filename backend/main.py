from contextlib import asynccontextmanager
from typing import Optional
import logging
import uuid

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

import config
from extractor import TaskExtractor
from models import (
    AITaskRequest,
    Board,
    BoardCreate,
    BoardUpdate,
    ExtractRequest,
    StatusUpdate,
    Subscription,
    SubscriptionCreate,
    SubscriptionStatus,
    Task,
    TaskColumns,
    TaskCreate,
    TaskDraft,
    TaskLimit,
    TaskMove,
    TaskUpdate,
)
from database import (
    init_db,
    get_boards_db,
    get_board_db,
    create_board_db,
    update_board_db,
    delete_board_db,
    ensure_default_board_db,
    get_tasks_db,
    get_tasks_by_status_db,
    create_task_db,
    update_task_db,
    update_task_status_db,
    move_task_db,
    delete_task_db,
    count_active_tasks_db,
    get_subscription_db,
    upsert_subscription_db,
    set_subscription_status_db,
    get_task_limit,
    has_reached_task_limit,
)

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

TASK_LIMIT_MESSAGE = "Task limit reached for your subscription plan"

# Billing webhook event -> new subscription status; other events are only logged
WEBHOOK_STATUS_EVENTS = {
    "BILLING.SUBSCRIPTION.ACTIVATED": SubscriptionStatus.ACTIVE,
    "BILLING.SUBSCRIPTION.CANCELLED": SubscriptionStatus.CANCELLED,
    "BILLING.SUBSCRIPTION.SUSPENDED": SubscriptionStatus.SUSPENDED,
}


@asynccontextmanager
async def lifespan(_app: FastAPI):
    # Startup
    init_db()
    yield
    # Shutdown (nothing to do)

app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

task_extractor = TaskExtractor(config.ExtractorConfig.from_env())


def get_extractor() -> TaskExtractor:
    return task_extractor


def current_user(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Caller identity, set by the auth provider in front of this service."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return x_user_id


def resolve_board(user_id: str, board_id: Optional[str]) -> Board:
    if not board_id:
        return ensure_default_board_db(user_id)
    board = get_board_db(board_id, user_id)
    if not board:
        raise HTTPException(status_code=404, detail="Board not found")
    return board


def create_task_for_user(user_id: str, task_data: TaskCreate) -> Task:
    """Create a task on the target board, enforcing the plan's active task cap."""
    if has_reached_task_limit(user_id):
        logger.warning("User %s has reached their task limit", user_id)
        raise HTTPException(status_code=403, detail=TASK_LIMIT_MESSAGE)
    board = resolve_board(user_id, task_data.board_id)
    return create_task_db(
        str(uuid.uuid4()),
        user_id,
        board.id,
        task_data.title,
        task_data.description,
        task_data.deadline,
        task_data.priority,
        task_data.status
    )


# Boards
@app.get("/boards")
def get_boards(user_id: str = Depends(current_user)) -> list[Board]:
    return get_boards_db(user_id)


@app.post("/boards")
def create_board(board_data: BoardCreate, user_id: str = Depends(current_user)) -> Board:
    return create_board_db(str(uuid.uuid4()), user_id, board_data.name, board_data.description)


@app.post("/boards/default")
def ensure_default_board(user_id: str = Depends(current_user)) -> Board:
    return ensure_default_board_db(user_id)


@app.patch("/boards/{board_id}")
def update_board(board_id: str, board_data: BoardUpdate, user_id: str = Depends(current_user)) -> Board:
    result = update_board_db(board_id, user_id, name=board_data.name, description=board_data.description)
    if not result:
        raise HTTPException(status_code=404, detail="Board not found")
    return result


@app.delete("/boards/{board_id}")
def delete_board(board_id: str, user_id: str = Depends(current_user)) -> dict:
    if not delete_board_db(board_id, user_id):
        raise HTTPException(status_code=404, detail="Board not found")
    return {"status": "deleted"}


# Tasks
@app.get("/tasks")
def get_tasks(board_id: Optional[str] = None, user_id: str = Depends(current_user)) -> list[Task]:
    return get_tasks_db(user_id, board_id)


@app.get("/tasks/by-status")
def get_tasks_by_status(board_id: Optional[str] = None, user_id: str = Depends(current_user)) -> TaskColumns:
    return get_tasks_by_status_db(user_id, board_id)


@app.post("/tasks")
def create_task(task_data: TaskCreate, user_id: str = Depends(current_user)) -> Task:
    return create_task_for_user(user_id, task_data)


@app.patch("/tasks/{task_id}")
def update_task(task_id: str, task_data: TaskUpdate, user_id: str = Depends(current_user)) -> Task:
    result = update_task_db(task_id, user_id, **task_data.model_dump(exclude_none=True))
    if not result:
        raise HTTPException(status_code=404, detail="Task not found")
    return result


@app.patch("/tasks/{task_id}/status")
def update_task_status(task_id: str, status_data: StatusUpdate, user_id: str = Depends(current_user)) -> Task:
    result = update_task_status_db(task_id, user_id, status_data.status)
    if not result:
        raise HTTPException(status_code=404, detail="Task not found")
    return result


@app.post("/tasks/{task_id}/move")
def move_task(task_id: str, move: TaskMove, user_id: str = Depends(current_user)) -> Task:
    result = move_task_db(task_id, user_id, move.status, move.index)
    if not result:
        raise HTTPException(status_code=404, detail="Task not found")
    return result


@app.delete("/tasks/{task_id}")
def delete_task(task_id: str, user_id: str = Depends(current_user)) -> dict:
    if not delete_task_db(task_id, user_id):
        raise HTTPException(status_code=404, detail="Task not found")
    return {"status": "deleted"}


# AI task helper
@app.post("/ai/extract")
async def extract_task(
    extract_request: ExtractRequest,
    _user_id: str = Depends(current_user),
    extractor: TaskExtractor = Depends(get_extractor),
) -> TaskDraft:
    """Turn free text into a task draft. Never fails; degrades to heuristics."""
    return await extractor.extract(extract_request.description)


@app.post("/ai/tasks")
async def create_task_from_text(
    ai_request: AITaskRequest,
    user_id: str = Depends(current_user),
    extractor: TaskExtractor = Depends(get_extractor),
) -> Task:
    """Extract a draft from free text and create it on the target board."""
    draft = await extractor.extract(ai_request.description)
    return create_task_for_user(user_id, TaskCreate(
        title=draft.title,
        description=draft.description,
        deadline=draft.deadline.isoformat(),
        priority=draft.priority,
        status=draft.status,
        board_id=ai_request.board_id
    ))


# Billing
@app.get("/subscription")
def get_subscription(user_id: str = Depends(current_user)) -> Optional[Subscription]:
    return get_subscription_db(user_id)


@app.post("/subscription")
def create_subscription(subscription_data: SubscriptionCreate, user_id: str = Depends(current_user)) -> Subscription:
    """Record a subscription approved in the checkout widget."""
    # Without dev mode the ACTIVATED webhook flips pending -> active
    status = SubscriptionStatus.ACTIVE if config.DEV_SUBSCRIPTION_MODE else SubscriptionStatus.PENDING
    return upsert_subscription_db(
        user_id,
        subscription_data.subscription_id,
        subscription_data.plan_id,
        status
    )


@app.get("/subscription/limit")
def get_subscription_limit(user_id: str = Depends(current_user)) -> TaskLimit:
    limit = get_task_limit(user_id)
    active = count_active_tasks_db(user_id)
    return TaskLimit(limit=limit, active=active, reached=active >= limit)


@app.post("/webhooks/paypal")
async def paypal_webhook(request: Request) -> dict:
    """Billing provider webhook. Valid events are always acknowledged with 200."""
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")

    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid payload")
    event_type = payload.get("event_type")
    resource = payload.get("resource")
    subscription_id = resource.get("id") if isinstance(resource, dict) else None
    if not event_type or not subscription_id:
        logger.error("Invalid webhook payload: %s", payload)
        raise HTTPException(status_code=400, detail="Invalid payload")

    logger.info("Received %s for subscription %s", event_type, subscription_id)
    new_status = WEBHOOK_STATUS_EVENTS.get(event_type)
    if new_status:
        if not set_subscription_status_db(subscription_id, new_status):
            logger.warning("No subscription %s to mark %s", subscription_id, new_status.value)
    else:
        logger.info("No status change for event %s", event_type)

    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
