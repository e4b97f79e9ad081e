from dataclasses import dataclass, field
from enum import Enum
from time import monotonic
from typing import Callable, Dict, List, Optional, Set, Tuple

from telegram import User

# ---------- 常量 ----------
CAPTCHA_EXPIRE_SECONDS = 30


class CallResult(Enum):
    REGISTERED = "registered"
    ALREADY_REGISTERED = "already_registered"
    IN_BLACKLIST = "in_blacklist"


class LeaveResult(Enum):
    LEFT = "left"
    NOT_REGISTERED = "not_registered"


class BlacklistResult(Enum):
    BLACKLISTED = "blacklisted"
    ALREADY_BLACKLISTED = "already_blacklisted"


class UnblacklistResult(Enum):
    UNBLACKLISTED = "unblacklisted"
    NOT_IN_BLACKLIST = "not_in_blacklist"


@dataclass(frozen=True)
class Registration:
    user: User
    # None 表示匿名注册
    sponsor: Optional[User]


@dataclass
class ChatRoster:
    members: List[Registration] = field(default_factory=list)
    blacklist: Set[int] = field(default_factory=set)
    # 用户ID -> (正确答案, 过期时间)
    pending: Dict[int, Tuple[bool, float]] = field(default_factory=dict)

    def index_of(self, user_id: int) -> Optional[int]:
        for pos, reg in enumerate(self.members):
            if reg.user.id == user_id:
                return pos
        return None


class CallMap:
    """按群组保存被 Call 列表、黑名单和待回答的验证码。

    不做任何 I/O，调用方负责加锁。群组条目在第一次写入时创建，进程存活期间不会删除。
    """

    def __init__(
        self,
        clock: Callable[[], float] = monotonic,
        captcha_ttl: float = CAPTCHA_EXPIRE_SECONDS,
    ) -> None:
        self._rosters: Dict[int, ChatRoster] = {}
        self._clock = clock
        self.captcha_ttl = captcha_ttl

    def _roster(self, chat_id: int) -> ChatRoster:
        roster = self._rosters.get(chat_id)
        if roster is None:
            roster = ChatRoster()
            self._rosters[chat_id] = roster
        return roster

    # ---------- 注册 / 离开 ----------
    def register(
        self, chat_id: int, user: User, sponsor: Optional[User]
    ) -> CallResult:
        roster = self._roster(chat_id)

        if user.id in roster.blacklist:
            return CallResult.IN_BLACKLIST

        if roster.index_of(user.id) is not None:
            return CallResult.ALREADY_REGISTERED

        roster.members.append(Registration(user=user, sponsor=sponsor))
        return CallResult.REGISTERED

    def leave(self, chat_id: int, user: User) -> LeaveResult:
        roster = self._rosters.get(chat_id)
        if roster is None:
            return LeaveResult.NOT_REGISTERED

        pos = roster.index_of(user.id)
        if pos is None:
            return LeaveResult.NOT_REGISTERED

        del roster.members[pos]
        return LeaveResult.LEFT

    def has_user(self, chat_id: int, user: User) -> bool:
        roster = self._rosters.get(chat_id)
        return roster is not None and roster.index_of(user.id) is not None

    def call_list(self, chat_id: int) -> List[User]:
        roster = self._rosters.get(chat_id)
        if roster is None:
            return []
        return [reg.user for reg in roster.members]

    def sponsor_of(self, chat_id: int, user: User) -> Optional[User]:
        """未注册和匿名注册都返回 None，调用方需先用 has_user 区分。"""
        roster = self._rosters.get(chat_id)
        if roster is None:
            return None

        pos = roster.index_of(user.id)
        if pos is None:
            return None
        return roster.members[pos].sponsor

    # ---------- 黑名单 ----------
    def blacklist(self, chat_id: int, user_id: int) -> BlacklistResult:
        """只写黑名单，不会把用户移出列表。"""
        roster = self._roster(chat_id)
        if user_id in roster.blacklist:
            return BlacklistResult.ALREADY_BLACKLISTED

        roster.blacklist.add(user_id)
        return BlacklistResult.BLACKLISTED

    def unblacklist(self, chat_id: int, user_id: int) -> UnblacklistResult:
        roster = self._rosters.get(chat_id)
        if roster is None or user_id not in roster.blacklist:
            return UnblacklistResult.NOT_IN_BLACKLIST

        roster.blacklist.discard(user_id)
        return UnblacklistResult.UNBLACKLISTED

    def is_blacklisted(self, chat_id: int, user_id: int) -> bool:
        roster = self._rosters.get(chat_id)
        return roster is not None and user_id in roster.blacklist

    # ---------- 验证码 ----------
    def _purge_expired(self, roster: ChatRoster) -> None:
        now = self._clock()
        expired = [
            uid for uid, (_, expires_at) in roster.pending.items() if now >= expires_at
        ]
        for uid in expired:
            del roster.pending[uid]

    def has_captcha(self, chat_id: int, user_id: int) -> bool:
        roster = self._rosters.get(chat_id)
        if roster is None:
            return False

        entry = roster.pending.get(user_id)
        return entry is not None and self._clock() < entry[1]

    def issue_captcha(self, chat_id: int, user_id: int, answer: bool) -> float:
        """登记一道验证码，返回过期时间。调用前需确认没有未过期的验证码。"""
        roster = self._roster(chat_id)
        self._purge_expired(roster)

        expires_at = self._clock() + self.captcha_ttl
        roster.pending[user_id] = (answer, expires_at)
        return expires_at

    def resolve_captcha(self, chat_id: int, user_id: int) -> Optional[bool]:
        """先清理本群所有过期验证码，再取出该用户的正确答案。"""
        roster = self._rosters.get(chat_id)
        if roster is None:
            return None

        self._purge_expired(roster)

        entry = roster.pending.pop(user_id, None)
        if entry is None:
            return None
        return entry[0]

    def is_waiting(self, chat_id: int, user_id: int, expires_at: float) -> bool:
        """这一道验证码是否从未被回答过（只读，不清理）。"""
        roster = self._rosters.get(chat_id)
        if roster is None:
            return False

        entry = roster.pending.get(user_id)
        return entry is not None and entry[1] == expires_at
