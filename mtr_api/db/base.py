from datetime import datetime

from sqlalchemy.orm import DeclarativeBase

from mtr_api.db.types import UTCDateTime


class Base(DeclarativeBase):
    type_annotation_map = {
        datetime: UTCDateTime(),
    }
