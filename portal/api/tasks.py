from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from portal.db import SessionLocal
from portal.models.task import Category, Task
from portal.schemas.task import TaskIn, TaskOut, TaskUpdate

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _ensure_category(db: Session, category_id: int | None) -> None:
    if category_id is not None and not db.get(Category, category_id):
        raise HTTPException(status_code=400, detail="Unknown categoryId")


def _task_payload(task: Task) -> dict:
    return TaskOut.model_validate(task).model_dump(by_alias=True, mode="json")


@router.get("")
def list_tasks(db: Session = Depends(get_db)):
    return [_task_payload(task) for task in db.query(Task).order_by(Task.created_at, Task.id).all()]


@router.get("/{task_id}")
def get_task(task_id: int, db: Session = Depends(get_db)):
    task = db.get(Task, task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return _task_payload(task)


@router.post("", status_code=201)
def create_task(body: TaskIn, db: Session = Depends(get_db)):
    _ensure_category(db, body.category_id)
    task = Task(
        title=body.title.strip(),
        description=(body.description or "").strip() or None,
        completed=body.completed,
        category_id=body.category_id,
    )
    db.add(task)
    db.commit()
    db.refresh(task)
    return _task_payload(task)


@router.patch("/{task_id}")
def update_task(task_id: int, body: TaskUpdate, db: Session = Depends(get_db)):
    task = db.get(Task, task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    changes = body.model_dump(exclude_unset=True)
    if "category_id" in changes:
        _ensure_category(db, changes["category_id"])
    for name, value in changes.items():
        if name in {"title", "completed"} and value is None:
            raise HTTPException(status_code=400, detail=f"{name} cannot be null")
        setattr(task, name, value)
    db.commit()
    db.refresh(task)
    return _task_payload(task)


@router.delete("/{task_id}")
def delete_task(task_id: int, db: Session = Depends(get_db)):
    task = db.get(Task, task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    db.delete(task)
    db.commit()
    return {"ok": True}
