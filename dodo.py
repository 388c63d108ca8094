# -*- coding: utf-8 -*-
# pydoit task file, see https://pydoit.org/
# run from this dir with `doit`, or `doit list` (pip install doit first)

from doit.action import CmdAction

SPEED_MARKERS = {
    "slow": '-m "slow"',
    "fast": '-m "not slow"',
    "not slow": '-m "not slow"',
    "all": "",
    "": "",
}

TEST_PARAMS = [
    {"name": "keyword", "short": "k", "default": ""},
    {"name": "speed", "short": "s", "default": ""},
    {"name": "retry", "short": "r", "default": False, "type": bool},
    {"name": "print_logs", "short": "p", "default": False, "type": bool},
    {"name": "show_time", "short": "t", "default": False, "type": bool},
]


def _pytest_command(test_dir, keyword="", speed="", retry=False, print_logs=False,
                    show_time=False):
    """pytest command line for a test directory."""
    if speed not in SPEED_MARKERS:
        raise ValueError(
            f"Invalid speed filter: {speed}. Use 'slow', 'fast' or 'all'"
        )
    cmd = ["pytest", "--color=yes", "-vv"]
    if print_logs:
        cmd.append("--capture=no")
    if show_time:
        cmd.append("--durations=0")
    if retry:
        cmd.append("--lf")
    if keyword:
        cmd.extend(["-k", f'"{keyword}"'])
    if SPEED_MARKERS[speed]:
        cmd.append(SPEED_MARKERS[speed])
    cmd.append(test_dir)
    return " ".join(cmd)


def task_install():
    """Install mdscope in editable mode, with the test extra."""
    return {"actions": ['pip install -e ".[test]"'], "verbosity": 2}


def task_test_logic():
    """Run the test suite in test/logic/.

    Examples:
      doit test_logic                  # all tests
      doit test_logic -k journal       # tests matching "journal"
      doit test_logic -s fast -p       # skip slow tests, print logs
    """

    def router(keyword, speed, retry, print_logs, show_time):
        try:
            return _pytest_command(
                "test/logic/",
                keyword=keyword,
                speed=speed,
                retry=retry,
                print_logs=print_logs,
                show_time=show_time,
            )
        except ValueError as e:
            return f"echo 'Error: {str(e)}' && exit 1"

    return {"actions": [CmdAction(router)], "params": TEST_PARAMS, "verbosity": 2}


def task_mock_acquire():
    """Acquire a small z-stack over two positions on the mock scope."""
    return {
        "actions": [
            "mdscope acquire -n mock --slices 5 --z-step 1.0 --positions 2 -lts"
        ],
        "verbosity": 2,
    }


def task_format():
    """Sort imports and format with ruff."""
    return {
        "actions": [
            f"ruff check --select I --fix {target} && ruff format {target}"
            for target in ("src/mdscope", "test/", "dodo.py")
        ],
        "verbosity": 2,
    }
