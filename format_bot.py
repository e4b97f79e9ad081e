# format_bot.py
import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).parent
TARGETS = (
    "bot.py",
    "call_map.py",
    "commands.py",
    "config.py",
    "questions.py",
    "sys_status.py",
    "format_bot.py",
    "tests",
)


def main():
    missing = [name for name in TARGETS if not (ROOT / name).exists()]
    if missing:
        print(f"❌ not found: {', '.join(missing)}", file=sys.stderr)
        sys.exit(1)

    # 显式使用当前 Python 环境调用 black
    try:
        result = subprocess.run(
            [sys.executable, "-m", "black", *TARGETS],
            capture_output=True,
            text=True,
            cwd=ROOT,  # 确保工作目录正确
        )
        if result.returncode == 0:
            print(f"✅ Formatted {len(TARGETS)} targets")
        else:
            print("❌ black error:", result.stderr, file=sys.stderr)
            sys.exit(1)
    except OSError as e:
        print("❌ Failed to run black:", e, file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
