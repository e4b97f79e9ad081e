import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# .env 放在项目根目录，已有的环境变量优先
ENV_FILE = Path(__file__).parent / ".env"


@dataclass(frozen=True)
class Config:
    bot_token: str
    allowed_chat_id: int
    log_level: str = "INFO"


def load_config(env_file: Optional[Path] = ENV_FILE) -> Config:
    """读取配置，缺少必填项时抛出 RuntimeError。"""
    if env_file is not None:
        load_dotenv(env_file)

    bot_token = os.getenv("BOT_TOKEN")
    raw_chat_id = os.getenv("ALLOWED_CHAT_ID", "0")

    if not bot_token:
        raise RuntimeError("请设置 BOT_TOKEN 环境变量")

    try:
        allowed_chat_id = int(raw_chat_id)
    except ValueError:
        raise RuntimeError(f"ALLOWED_CHAT_ID 不是有效的群组 ID: {raw_chat_id!r}")

    if allowed_chat_id == 0:
        raise RuntimeError("请设置 ALLOWED_CHAT_ID 环境变量")

    return Config(
        bot_token=bot_token,
        allowed_chat_id=allowed_chat_id,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
