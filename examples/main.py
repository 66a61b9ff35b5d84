import dev

build = {
    "version": dev.get_version(),
    "dir": dev.get_work_dir(),
    "environment": {"TEST": dev.getenv("TEST", "unset")},
    "steps": [
        "python -m pip install -e .",
        "python -m pytest -q",
    ],
}
