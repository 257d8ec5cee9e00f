# src/modules/schedule/timeline.py

from datetime import date, datetime, time, timedelta, timezone

from src.core.config import settings

# 本地业务时区 (单一营业时区，不支持多时区)
LOCAL_TIMEZONE = timezone(
    timedelta(hours=settings.LOCAL_UTC_OFFSET_HOURS),
    settings.LOCAL_TIMEZONE_NAME,
)


# --- 辅助函数：时间范围重叠 ---
def is_overlap(range1_start, range1_end, range2_start, range2_end) -> bool:
    """检查两个时间范围 [start, end) 是否重叠；首尾相接不算重叠"""
    return range1_start < range2_end and range2_start < range1_end


def to_local(value: datetime) -> datetime:
    """
    统一为本地业务时区的 naive datetime。
    带时区的时间先换算到本地时区，再去掉 tzinfo；naive 时间视为已是本地时间。
    """
    if value.tzinfo is None:
        return value
    return value.astimezone(LOCAL_TIMEZONE).replace(tzinfo=None)


def now_local() -> datetime:
    return datetime.now(LOCAL_TIMEZONE).replace(tzinfo=None, microsecond=0)


def combine_local(target_date: date, at: time) -> datetime:
    return datetime.combine(target_date, at)


def day_bounds(target_date: date) -> tuple[datetime, datetime]:
    """返回 [当天 00:00, 次日 00:00)"""
    day_start = datetime.combine(target_date, time.min)
    return day_start, day_start + timedelta(days=1)


def parse_clock(value: str) -> time:
    """解析 'HH:MM' 格式的配置时间"""
    return datetime.strptime(value, "%H:%M").time()
