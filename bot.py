import asyncio
import logging
import random
from typing import Awaitable, Callable, Dict, List, Optional

from telegram import BotCommand, Message, Update, User
from telegram.constants import ParseMode
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    ApplicationBuilder,
    ContextTypes,
    MessageHandler,
    filters,
)
from telegram.helpers import mention_html

from call_map import (
    BlacklistResult,
    CallMap,
    CallResult,
    LeaveResult,
    UnblacklistResult,
)
from commands import COMMAND_DESCRIPTIONS, Command, help_text, parse
from config import Config, load_config
from questions import pick_question
from sys_status import sys_status

LOGGER = logging.getLogger(__name__)

# ---------- 常量 ----------
REMOVE_LATER_SECONDS = 30
CAPTCHA_PROBABILITY = 0.3
ANONYMOUS_ONE_IN = 10

USER_PLACEHOLDER = "#User#"
WRONG_VENUE_TEXT = "请在指定群组内使用此机器人"

Handler = Callable[[Message, ContextTypes.DEFAULT_TYPE], Awaitable[None]]


# ---------- 共享状态 ----------
def init_bot_data(
    bot_data: dict,
    allowed_chat_id: int,
    call_map: Optional[CallMap] = None,
    rng=None,
) -> None:
    """所有处理器共用的状态都放在 bot_data 里，由同一把锁保护。"""
    bot_data["call_map"] = call_map if call_map is not None else CallMap()
    bot_data["rng"] = rng if rng is not None else random.Random()
    bot_data["lock"] = asyncio.Lock()
    bot_data["allowed_chat_id"] = allowed_chat_id


def _call_map(context: ContextTypes.DEFAULT_TYPE) -> CallMap:
    return context.bot_data["call_map"]


def _rng(context: ContextTypes.DEFAULT_TYPE):
    return context.bot_data["rng"]


# ---------- 发送与延迟删除 ----------
def replace_user(template: str, user: User) -> str:
    return template.replace(USER_PLACEHOLDER, mention_html(user.id, user.full_name))


async def _delete_messages_job(context: ContextTypes.DEFAULT_TYPE) -> None:
    chat_id, message_ids = context.job.data
    try:
        await context.bot.delete_messages(chat_id=chat_id, message_ids=message_ids)
    except TelegramError as exc:
        LOGGER.warning("删除消息 %s 失败: %s", message_ids, exc)


def remove_later(
    context: ContextTypes.DEFAULT_TYPE,
    chat_id: int,
    message_ids: List[int],
    delay: float = REMOVE_LATER_SECONDS,
) -> None:
    """定时删除消息，不保留任务句柄，也不会取消。"""
    context.job_queue.run_once(
        _delete_messages_job,
        delay,
        data=(chat_id, message_ids),
    )


async def reply(
    context: ContextTypes.DEFAULT_TYPE,
    msg: Message,
    text: str,
    html: bool = False,
) -> Message:
    """回复到原群组，30 秒后连同触发消息一起删除。"""
    sent = await context.bot.send_message(
        chat_id=msg.chat_id,
        text=text,
        parse_mode=ParseMode.HTML if html else None,
    )
    remove_later(context, msg.chat_id, [sent.message_id, msg.message_id])
    return sent


# ---------- 命令处理器 ----------
async def handle_help_request(
    msg: Message, context: ContextTypes.DEFAULT_TYPE
) -> None:
    await reply(context, msg, f"{help_text()}\n\n{sys_status()}")
    LOGGER.info("send help done")


async def call_pu(msg: Message, context: ContextTypes.DEFAULT_TYPE) -> None:
    from_user = msg.from_user
    call_list = _call_map(context).call_list(msg.chat_id)

    if not call_list:
        await reply(context, msg, "没有人捏，你来 r 一下吧")
        return

    if not any(user.id == from_user.id for user in call_list):
        await reply(context, msg, "你不许参加 impart !")
        return

    mentions = [
        mention_html(user.id, user.full_name)
        for user in call_list
        if user.id != from_user.id
    ]
    if not mentions:
        await reply(context, msg, "没有其他人捏，叫一个吧")
        return

    text = (
        "正在 Call PU：\n"
        + "\n".join(mentions)
        + "\n\n温馨提示：\n使用 /whoregisteredme 可以查看是谁把您拉进来的捏"
    )
    await reply(context, msg, text, html=True)
    LOGGER.info("用户 %s 在 %s Call 了 %d 人", from_user.id, msg.chat_id, len(mentions))


async def register_user(msg: Message, context: ContextTypes.DEFAULT_TYPE) -> None:
    call_map = _call_map(context)
    from_user = msg.from_user

    target = msg.reply_to_message.from_user if msg.reply_to_message else None

    # 回复别人的消息：帮对方注册，10% 的几率不记录注册人
    if target is not None and target.id != from_user.id:
        anonymous = _rng(context).randrange(ANONYMOUS_ONE_IN) == 0
        sponsor = None if anonymous else from_user

        result = call_map.register(msg.chat_id, target, sponsor)
        LOGGER.info(
            "用户 %s 注册 %s (匿名=%s): %s",
            from_user.id,
            target.id,
            anonymous,
            result.value,
        )

        if result is CallResult.REGISTERED:
            await reply(
                context,
                msg,
                replace_user("注册成功！#User# 现在会被 Call 了", target),
                html=True,
            )
        elif result is CallResult.ALREADY_REGISTERED:
            await reply(context, msg, "该用户已经注册过了！")
        else:
            await reply(
                context,
                msg,
                replace_user("#User# 在黑名单中，无法注册", target),
                html=True,
            )
        return

    result = call_map.register(msg.chat_id, from_user, from_user)
    LOGGER.info("用户 %s 自行注册: %s", from_user.id, result.value)

    if result is CallResult.REGISTERED:
        await reply(
            context,
            msg,
            replace_user("注册成功！#User# 现在会被 Call 了", from_user),
            html=True,
        )
    elif result is CallResult.ALREADY_REGISTERED:
        await reply(context, msg, "你已经注册过了！")
    else:
        await reply(context, msg, "你在黑名单中，请先使用 /unblacklist 移出黑名单")


async def leave_user(msg: Message, context: ContextTypes.DEFAULT_TYPE) -> None:
    user = msg.from_user
    result = _call_map(context).leave(msg.chat_id, user)

    if result is LeaveResult.LEFT:
        LOGGER.info("用户 %s 离开了 %s", user.id, msg.chat_id)
        await reply(
            context, msg, replace_user("#User# 已离开被 Call 列表", user), html=True
        )
    else:
        await reply(context, msg, "你还没有注册过！")


async def who_registered_me(
    msg: Message, context: ContextTypes.DEFAULT_TYPE
) -> None:
    call_map = _call_map(context)
    from_user = msg.from_user

    if not call_map.has_user(msg.chat_id, from_user):
        await reply(
            context, msg, replace_user("#User# 还没有人注册你捏", from_user), html=True
        )
        return

    sponsor = call_map.sponsor_of(msg.chat_id, from_user)
    if sponsor is None:
        await reply(context, msg, "10% 的几率！ Bot 忘了捏")
        return

    await reply(
        context, msg, replace_user("查到了！#User# 注册了你捏", sponsor), html=True
    )


# ---------- 黑名单与验证码 ----------
async def _do_blacklist(
    msg: Message, context: ContextTypes.DEFAULT_TYPE, user: User
) -> None:
    call_map = _call_map(context)
    result = call_map.blacklist(msg.chat_id, user.id)

    if result is BlacklistResult.ALREADY_BLACKLISTED:
        await reply(context, msg, "你已经在黑名单中了")
        return

    if call_map.has_user(msg.chat_id, user):
        call_map.leave(msg.chat_id, user)

    LOGGER.info("用户 %s 加入了 %s 的黑名单", user.id, msg.chat_id)
    await reply(
        context,
        msg,
        replace_user("#User# 已加入 Call 黑名单，不会再被 Call 了", user),
        html=True,
    )


async def _captcha_timeout_job(context: ContextTypes.DEFAULT_TYPE) -> None:
    chat_id, user, expires_at = context.job.data

    # 只读检查，不拿锁
    if not context.bot_data["call_map"].is_waiting(chat_id, user.id, expires_at):
        return

    sent = await context.bot.send_message(
        chat_id=chat_id,
        text=replace_user("#User# 验证超时，没有加入黑名单", user),
        parse_mode=ParseMode.HTML,
    )
    remove_later(context, chat_id, [sent.message_id])


async def blacklist_self(msg: Message, context: ContextTypes.DEFAULT_TYPE) -> None:
    call_map = _call_map(context)
    rng = _rng(context)
    user = msg.from_user

    if call_map.has_captcha(msg.chat_id, user.id):
        await reply(context, msg, "你还有一道验证题没有回答捏")
        return

    if rng.random() >= CAPTCHA_PROBABILITY:
        await _do_blacklist(msg, context, user)
        return

    question = pick_question(rng)
    expires_at = call_map.issue_captcha(msg.chat_id, user.id, question.answer)
    seconds = int(call_map.captcha_ttl)
    LOGGER.info("用户 %s 需要回答验证题才能加入黑名单", user.id)

    text = replace_user(
        f"#User# 请在 {seconds} 秒内回答（回复 t 或 f）：\n{question.text}", user
    )
    await reply(context, msg, text, html=True)
    context.job_queue.run_once(
        _captcha_timeout_job,
        call_map.captcha_ttl,
        data=(msg.chat_id, user, expires_at),
    )


async def answer_captcha(
    msg: Message, context: ContextTypes.DEFAULT_TYPE, answer: bool
) -> None:
    user = msg.from_user
    expected = _call_map(context).resolve_captcha(msg.chat_id, user.id)

    # 没有进行中的验证码：当作普通消息忽略
    if expected is None:
        return

    if answer == expected:
        await _do_blacklist(msg, context, user)
        return

    LOGGER.info("用户 %s 验证题回答错误", user.id)
    await reply(context, msg, "回答错误，没有加入黑名单")


async def unblacklist_self(
    msg: Message, context: ContextTypes.DEFAULT_TYPE
) -> None:
    user = msg.from_user
    result = _call_map(context).unblacklist(msg.chat_id, user.id)

    if result is UnblacklistResult.UNBLACKLISTED:
        LOGGER.info("用户 %s 移出了 %s 的黑名单", user.id, msg.chat_id)
        await reply(
            context, msg, replace_user("#User# 已从 Call 黑名单移除", user), html=True
        )
    else:
        await reply(context, msg, "你不在黑名单中")


HANDLERS: Dict[Command, Handler] = {
    Command.HELP: handle_help_request,
    Command.CALL_PU: call_pu,
    Command.REGISTER: register_user,
    Command.LEAVE: leave_user,
    Command.WHO_REGISTERED_ME: who_registered_me,
    Command.BLACKLIST: blacklist_self,
    Command.UNBLACKLIST: unblacklist_self,
}


# ---------- 消息入口 ----------
async def handle_message(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """唯一的消息入口：群组检查、命令解析、分发。整个处理过程持有全局锁。"""
    msg = update.effective_message
    if msg is None or msg.from_user is None:
        return

    LOGGER.debug(
        "Received message %s from %s in %s", msg.message_id, msg.from_user.id, msg.chat_id
    )

    async with context.bot_data["lock"]:
        if msg.chat_id != context.bot_data["allowed_chat_id"]:
            await reply(context, msg, WRONG_VENUE_TEXT)
            return

        parsed = parse(msg.text, context.bot.username)
        if parsed is None:
            return

        if parsed.command is Command.ANSWER:
            await answer_captcha(msg, context, parsed.answer)
        else:
            await HANDLERS[parsed.command](msg, context)


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    LOGGER.error("处理消息时出错: %s", context.error, exc_info=context.error)


async def _post_init(application: Application) -> None:
    await application.bot.set_my_commands(
        [BotCommand(cmd.value, desc) for cmd, desc in COMMAND_DESCRIPTIONS.items()]
    )


def build_application(config: Config) -> Application:
    app = ApplicationBuilder().token(config.bot_token).post_init(_post_init).build()
    init_bot_data(app.bot_data, config.allowed_chat_id)

    app.add_handler(MessageHandler(filters.UpdateType.MESSAGE, handle_message))
    app.add_error_handler(error_handler)
    return app


def main() -> None:
    config = load_config()

    logging.basicConfig(
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        level=config.log_level,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)

    app = build_application(config)

    LOGGER.info("Bot is running...")
    app.run_polling(allowed_updates=Update.ALL_TYPES)


if __name__ == "__main__":
    main()
