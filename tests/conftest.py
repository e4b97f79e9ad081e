"""
Call bot test fixtures
"""

import itertools
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, List, Optional

import pytest
from telegram import Chat, Message, Update, User

import bot
from call_map import CallMap

GROUP_ID = -100123
OTHER_CHAT_ID = -100999
NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)

_ids = itertools.count(1)


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FixedRng:
    """Deterministic stand-in for random.Random."""

    def __init__(self, random_value=0.99, randrange_value=5, choice_index=0):
        self.random_value = random_value
        self.randrange_value = randrange_value
        self.choice_index = choice_index

    def random(self):
        return self.random_value

    def randrange(self, stop):
        return self.randrange_value

    def choice(self, seq):
        return seq[self.choice_index]


@dataclass
class SentMessage:
    chat_id: int
    text: str
    parse_mode: Optional[str]
    message_id: int


class FakeBot:
    username = "callpu_bot"

    def __init__(self) -> None:
        self.sent: List[SentMessage] = []
        self.deleted: List[tuple] = []

    async def send_message(self, chat_id, text, parse_mode=None, **kwargs):
        sent = SentMessage(chat_id, text, parse_mode, next(_ids) + 10000)
        self.sent.append(sent)
        return SimpleNamespace(message_id=sent.message_id, chat_id=chat_id)

    async def delete_messages(self, chat_id, message_ids, **kwargs):
        self.deleted.append((chat_id, list(message_ids)))

    @property
    def texts(self) -> List[str]:
        return [m.text for m in self.sent]


@dataclass
class FakeJob:
    callback: Any
    when: float
    data: Any = None


@dataclass
class FakeJobQueue:
    jobs: List[FakeJob] = field(default_factory=list)

    def run_once(self, callback, when, data=None, **kwargs):
        job = FakeJob(callback, when, data)
        self.jobs.append(job)
        return job

    async def run_pending(self, context) -> None:
        """Run every queued job once, like the timers firing."""
        jobs, self.jobs = self.jobs, []
        for job in jobs:
            job_context = SimpleNamespace(
                bot=context.bot,
                bot_data=context.bot_data,
                job_queue=self,
                job=job,
            )
            await job.callback(job_context)


def make_user(uid: int, name: str = "") -> User:
    return User(id=uid, first_name=name or f"user{uid}", is_bot=False)


def make_update(
    user: Optional[User],
    text: Optional[str],
    chat_id: int = GROUP_ID,
    reply_to: Optional[User] = None,
) -> Update:
    chat = Chat(id=chat_id, type="supergroup")
    reply_msg = None
    if reply_to is not None:
        reply_msg = Message(
            message_id=next(_ids), date=NOW, chat=chat, from_user=reply_to, text="hi"
        )
    msg = Message(
        message_id=next(_ids),
        date=NOW,
        chat=chat,
        from_user=user,
        text=text,
        reply_to_message=reply_msg,
    )
    return Update(update_id=next(_ids), message=msg)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def call_map(clock) -> CallMap:
    return CallMap(clock=clock)


@pytest.fixture
def rng() -> FixedRng:
    return FixedRng()


@pytest.fixture
def context(call_map, rng):
    ctx = SimpleNamespace(bot=FakeBot(), bot_data={}, job_queue=FakeJobQueue())
    bot.init_bot_data(ctx.bot_data, GROUP_ID, call_map=call_map, rng=rng)
    return ctx


@pytest.fixture
def send(context):
    """Feed one text message through the bot entry point."""

    async def _send(user, text, chat_id=GROUP_ID, reply_to=None):
        before = len(context.bot.sent)
        await bot.handle_message(
            make_update(user, text, chat_id=chat_id, reply_to=reply_to), context
        )
        return context.bot.sent[before:]

    return _send


@pytest.fixture
def alice() -> User:
    return make_user(1, "Alice")


@pytest.fixture
def bob() -> User:
    return make_user(2, "Bob")


@pytest.fixture
def carol() -> User:
    return make_user(3, "Carol")
