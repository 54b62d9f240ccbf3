from sqlalchemy.orm import declarative_base
from sqlalchemy import Column, String, Integer, Boolean, DateTime, Text, func
Base = declarative_base()

STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_FAILED)

class Iffy(Base):
    __tablename__ = "iffy"
    id = Column(String(36), primary_key=True, index=True)
    estimated_age = Column(Integer, nullable=False, default=0)
    is_person = Column(Boolean, nullable=False, default=False)
    description = Column(Text, nullable=True)
    style_prompt = Column(Text, nullable=True)
    gift_name = Column(String, nullable=True)
    brand = Column(String, nullable=True)
    gift_image_url = Column(String, nullable=True)
    product_image_url = Column(String, nullable=True)
    commentary = Column(Text, nullable=True)
    purchase_link = Column(String, nullable=True)
    humor_line = Column(Text, nullable=True)
    is_error = Column(Boolean, nullable=False, default=False)
    user_id = Column(String, nullable=True, index=True)
    status = Column(String, nullable=False, default=STATUS_PROCESSING)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
