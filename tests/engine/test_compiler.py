from __future__ import annotations

import anyio

from tsrf.engine.compiler import CompilerProcess, strip_clear_screen


def test_strip_clear_screen() -> None:
    assert strip_clear_screen("\x1bc\x1b[2J\x1b[3J12:00:00 - Starting compilation") == "12:00:00 - Starting compilation"
    assert strip_clear_screen("\x1b[32mok\x1b[0m") == "\x1b[32mok\x1b[0m"


async def test_run_streams_output(tmp_path, capsys) -> None:
    compiler = CompilerProcess("printf '\\033chello\\n'", tmp_path)

    assert await compiler.run() == 0

    assert capsys.readouterr().out == "hello\n"
    assert not compiler.running


async def test_run_in_project_root(tmp_path, capsys) -> None:
    await CompilerProcess("pwd", tmp_path).run()

    assert capsys.readouterr().out.strip() == str(tmp_path.resolve())


async def test_stop_interrupts_the_compiler(tmp_path) -> None:
    compiler = CompilerProcess("exec sleep 30", tmp_path)

    with anyio.fail_after(10):
        async with anyio.create_task_group() as tg:
            await tg.start(compiler.run)
            assert compiler.running
            await compiler.stop()

    assert not compiler.running


async def test_stop_before_start_is_a_no_op(tmp_path) -> None:
    await CompilerProcess("true", tmp_path).stop()
