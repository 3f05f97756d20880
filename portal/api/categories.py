from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from portal.db import SessionLocal
from portal.models.task import Category
from portal.schemas.task import CategoryIn, CategoryOut

router = APIRouter(prefix="/api/categories", tags=["categories"])


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@router.get("", response_model=list[CategoryOut])
def list_categories(db: Session = Depends(get_db)):
    return db.query(Category).order_by(Category.id).all()


@router.get("/{category_id}", response_model=CategoryOut)
def get_category(category_id: int, db: Session = Depends(get_db)):
    category = db.get(Category, category_id)
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    return category


@router.post("", status_code=201, response_model=CategoryOut)
def create_category(body: CategoryIn, db: Session = Depends(get_db)):
    name = body.name.strip()
    if db.query(Category).filter(Category.name == name).first():
        raise HTTPException(status_code=400, detail="Category name already exists")
    category = Category(name=name, color=body.color.strip())
    db.add(category)
    db.commit()
    db.refresh(category)
    return category
