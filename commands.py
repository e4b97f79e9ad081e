from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional


class Command(Enum):
    HELP = "help"
    CALL_PU = "callpu"
    REGISTER = "register"
    LEAVE = "leave"
    WHO_REGISTERED_ME = "whoregisteredme"
    BLACKLIST = "blacklist"
    UNBLACKLIST = "unblacklist"
    ANSWER = "answer"


# 帮助信息 / 命令菜单
COMMAND_DESCRIPTIONS: Dict[Command, str] = {
    Command.HELP: "查看帮助",
    Command.CALL_PU: "或 c 一键被打",
    Command.REGISTER: "或 r 注册到被 Call 列表",
    Command.LEAVE: "或 l 离开被 Call 列表",
    Command.WHO_REGISTERED_ME: "查看发送消息者被谁注册",
    Command.BLACKLIST: "将自己加入 Call 黑名单",
    Command.UNBLACKLIST: "将自己从 Call 黑名单移除",
}

_BY_NAME: Dict[str, Command] = {cmd.value: cmd for cmd in COMMAND_DESCRIPTIONS}

ALIASES: Dict[str, Command] = {
    "r": Command.REGISTER,
    "R": Command.REGISTER,
    "l": Command.LEAVE,
    "L": Command.LEAVE,
    "丨": Command.LEAVE,
    "c": Command.CALL_PU,
    "C": Command.CALL_PU,
}

TRUE_WORDS = frozenset({"t", "T", "y", "Y", "true", "True", "TRUE", "yes", "Yes"})
FALSE_WORDS = frozenset({"f", "F", "n", "N", "false", "False", "FALSE", "no", "No"})


@dataclass(frozen=True)
class Parsed:
    command: Command
    # 仅 ANSWER 使用
    answer: Optional[bool] = None


def parse_command(text: str, bot_username: Optional[str]) -> Optional[Parsed]:
    """解析 /cmd 或 /cmd@botname 形式的命令，失败返回 None。"""
    if not text.startswith("/"):
        return None

    head = text.split(maxsplit=1)[0][1:]
    name, _, target = head.partition("@")
    if target and (not bot_username or target.lower() != bot_username.lower()):
        return None

    command = _BY_NAME.get(name.lower())
    if command is None:
        return None
    return Parsed(command)


def parse_alias(text: str) -> Optional[Parsed]:
    """单字别名和验证码回答，只做精确匹配。"""
    if text in ALIASES:
        return Parsed(ALIASES[text])
    if text in TRUE_WORDS:
        return Parsed(Command.ANSWER, answer=True)
    if text in FALSE_WORDS:
        return Parsed(Command.ANSWER, answer=False)
    return None


def parse(text: Optional[str], bot_username: Optional[str]) -> Optional[Parsed]:
    if not text:
        return None
    return parse_command(text, bot_username) or parse_alias(text)


def help_text() -> str:
    lines = ["These commands are supported:"]
    lines.extend(
        f"/{cmd.value} - {desc}" for cmd, desc in COMMAND_DESCRIPTIONS.items()
    )
    return "\n".join(lines)
