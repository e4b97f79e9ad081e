import random
from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class Question:
    text: str
    answer: bool


# 题目答案只有真/假，回复 t 或 f 即可
QUESTIONS: Tuple[Question, ...] = (
    Question("Python 中 <code>0.1 + 0.2 == 0.3</code> 的结果是 True", False),
    Question("Python 中 <code>[] == []</code> 的结果是 True", True),
    Question("Python 中 <code>[] is []</code> 的结果是 True", False),
    Question("Python 中 <code>bool(\"False\")</code> 的结果是 True", True),
    Question("Python 中 <code>True + True == 2</code> 的结果是 True", True),
    Question("Python 中 <code>\"10\" &lt; \"9\"</code> 的结果是 True", True),
    Question("Python 中 <code>round(2.5) == 3</code> 的结果是 True", False),
    Question("Python 中 <code>-7 // 2 == -3</code> 的结果是 True", False),
    Question("JavaScript 中 <code>typeof null === \"object\"</code> 的结果是 true", True),
    Question("JavaScript 中 <code>NaN === NaN</code> 的结果是 true", False),
    Question("C 语言中 <code>sizeof(char) == 1</code> 恒成立", True),
    Question("Rust 中 <code>u8</code> 的最大值是 256", False),
    Question("二进制 <code>1010</code> 等于十进制 10", True),
    Question("<code>0xFF</code> 等于十进制 256", False),
    Question("如果所有的猫都会飞，而汤姆是猫，那么汤姆会飞", True),
    Question("<code>A and not A</code> 可能为真", False),
)


def pick_question(rng=random) -> Question:
    return rng.choice(QUESTIONS)
