# marketplace/models/user.py
# 使用者由外部身分提供者建立，本服務只讀取並更新 xp / rating / reviews_count
from sqlalchemy import Column, String, Enum, Float, INT, TIMESTAMP, CHAR, func
from marketplace.core.database import Base
import enum

# 對應 SQL 中的 ENUM 型別
class UserRoleEnum(str, enum.Enum):
    contractor = "CONTRACTOR"
    professional = "PROFESSIONAL"
    admin = "ADMIN"

class UserStatusEnum(str, enum.Enum):
    active = "ACTIVE"
    blocked = "BLOCKED"

class User(Base):
    __tablename__ = "users"

    # 基本欄位
    user_id = Column(CHAR(36), primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    role = Column(Enum(UserRoleEnum, values_callable=lambda obj: [e.value for e in obj]), nullable=False)
    status = Column(
        Enum(UserStatusEnum, values_callable=lambda obj: [e.value for e in obj]),
        default=UserStatusEnum.active,
        nullable=False
    )
    avatar_url = Column(String(500))
    # 專長 (逗號分隔，例如 "Plumber, Electrician")
    specialty = Column(String(500))
    latitude = Column(Float)
    longitude = Column(Float)

    # 遊戲化 / 評價彙總
    xp = Column(INT, default=0, nullable=False)
    rating = Column(Float, default=5.0, nullable=False)
    reviews_count = Column(INT, default=0, nullable=False)

    created_at = Column(TIMESTAMP, server_default=func.now())

    @property
    def specialties(self) -> list[str]:
        if not self.specialty:
            return []
        return [s.strip() for s in self.specialty.split(",") if s.strip()]

    @property
    def is_active(self) -> bool:
        return self.status != UserStatusEnum.blocked
