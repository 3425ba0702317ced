from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from datetime import date, datetime
from typing import Optional
import logging
import uuid

from config import get_settings
from models import (
    AnalyticsData,
    CompleteRecurringResult,
    CompletionRecord,
    FormatRequest,
    FormatResponse,
    ParseRequest,
    ParseResponse,
    PastCompletionResult,
    PastCompletionUpdate,
    RecurringOccurrences,
    Task,
    TaskCreate,
    TaskUpdate,
)
from pattern_text import format_recurring_pattern, parse_recurring_description
from recurrence import get_next_notification_time
import database

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    # Startup
    database.init_db()
    yield
    # Shutdown (nothing to do)

app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _check_range(start: date, end: date):
    if start > end:
        raise HTTPException(status_code=400, detail="start must not be after end")


@app.get("/tasks")
def get_tasks() -> list[Task]:
    return database.get_all_tasks()


@app.post("/tasks")
def create_task(task_data: TaskCreate) -> Task:
    task_id = str(uuid.uuid4())
    return database.create_task_db(
        task_id,
        task_data.title,
        task_data.due_date,
        task_data.reminder_at,
        task_data.recurring_pattern
    )


@app.patch("/tasks/{task_id}")
def update_task(task_id: str, task_data: TaskUpdate) -> Task:
    # Only fields the client sent; an explicit null clears the field
    updates = {field: getattr(task_data, field) for field in task_data.model_fields_set}
    result = database.update_task_db(task_id, **updates)
    if not result:
        raise HTTPException(status_code=404, detail="Task not found")
    return result


@app.delete("/tasks/{task_id}")
def delete_task(task_id: str) -> dict:
    if not database.delete_task_db(task_id):
        raise HTTPException(status_code=404, detail="Task not found")
    return {"status": "deleted"}


@app.post("/tasks/{task_id}/complete-recurring")
def complete_recurring(task_id: str) -> CompleteRecurringResult:
    """Complete the current occurrence and schedule the next one."""
    try:
        result = database.complete_recurring_task_db(task_id, datetime.now())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if result is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return result


@app.get("/tasks/{task_id}/next-notification")
def next_notification(task_id: str, from_time: Optional[datetime] = None) -> dict:
    """Next notification time for a recurring task, from now unless from_time is given."""
    task = database.get_task_db(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    if task.recurring_pattern is None:
        raise HTTPException(status_code=400, detail="Task does not have a recurring pattern")
    notify = get_next_notification_time(task.recurring_pattern, from_time or datetime.now())
    return {"next_notification": notify.isoformat() if notify else None}


@app.get("/recurring/occurrences")
def recurring_occurrences(start: date, end: date) -> list[RecurringOccurrences]:
    _check_range(start, end)
    return database.get_recurring_occurrences_db(start, end)


@app.get("/completion-history")
def completion_history(start: date, end: date) -> list[CompletionRecord]:
    _check_range(start, end)
    return database.get_completion_history_db(start, end)


@app.post("/completion-history")
def update_past_completion(update: PastCompletionUpdate) -> PastCompletionResult:
    """Mark a past occurrence completed or not completed."""
    try:
        result = database.update_past_completion_db(
            update.task_id, update.scheduled_date, update.completed, datetime.now()
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if result is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return result


@app.get("/analytics")
def analytics(start: date, end: date) -> AnalyticsData:
    _check_range(start, end)
    return database.get_analytics_db(start, end, date.today())


@app.post("/patterns/parse")
def parse_pattern(request: ParseRequest) -> ParseResponse:
    """Parse a phrase like "every Mon, Wed, Fri"; pattern is null if not recognized."""
    pattern = parse_recurring_description(request.text)
    if pattern is None:
        return ParseResponse(pattern=None, description=None)
    return ParseResponse(pattern=pattern, description=format_recurring_pattern(pattern))


@app.post("/patterns/format")
def format_pattern(request: FormatRequest) -> FormatResponse:
    return FormatResponse(description=format_recurring_pattern(request.pattern))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
