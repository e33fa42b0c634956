"""
笔记数据模型
表名遵循隔离协议：notes_前缀
每个用户一条记录，整棵树以 JSON 文档整体读写
"""

from datetime import datetime
from sqlalchemy import Integer, Boolean, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column

from core.database import Base
from utils.timezone import utc_now


class NotesTree(Base):
    """用户笔记树"""
    __tablename__ = "notes_trees"
    __table_args__ = {"extend_existing": True, "comment": "笔记树表"}

    # 所属用户（严格隔离，一人一棵树）
    user_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False, comment="用户ID")

    # 有序森林，字段与接口返回格式一致
    tree: Mapped[list] = mapped_column(JSON, default=list, comment="笔记树")

    # 是否有启用中的提醒（调度器据此筛选用户）
    has_reminders: Mapped[bool] = mapped_column(Boolean, default=False, index=True, comment="是否有启用的提醒")

    # 每次整树写入加一
    version: Mapped[int] = mapped_column(Integer, default=0, comment="版本号")

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, comment="更新时间"
    )
