import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

from gravel.gravel_config import CompilerOptions
from gravel.gravel_runtime import StylesheetRunner, CompileResult, compile_batch


# A basic awaitable input prompt.
async def ainput(prompt: str) -> str:
    loop = asyncio.get_running_loop()
    sys.stdout.write(prompt)
    sys.stdout.flush()
    return await loop.run_in_executor(None, sys.stdin.readline)


def _print_side_effects(result: CompileResult):
    # Errors are printed through format_error; only @debug and @warn output here.
    for effect in result.side_effects:
        topics = effect.get('topics', [])
        if 'debug' in topics or 'warn' in topics:
            print(effect.get('message', ''), file=sys.stderr)


def _report(results: List[CompileResult], output: Optional[str]) -> int:
    status = 0
    chunks = []
    for result in results:
        _print_side_effects(result)
        if result.status == 'error':
            print(result.format_error(), file=sys.stderr)
            status = 1
        elif result.css:
            chunks.append(result.css)
    css = "\n".join(chunks)
    if output:
        Path(output).write_text(css, encoding='utf-8')
    elif css:
        sys.stdout.write(css)
    return status


async def run_files(paths: List[str], options: CompilerOptions, output: Optional[str]) -> int:
    """Compile the given files and report; returns the process exit status."""
    if len(paths) == 1:
        results = [StylesheetRunner(options).compile_file(paths[0])]
    else:
        results = await compile_batch(paths, options)
    return _report(results, output)


async def repl(options: CompilerOptions):
    print("gravel REPL v0.1")
    print("Type 'exit' or press Ctrl+D to quit.")
    runner = StylesheetRunner(options)
    while True:
        try:
            raw = await ainput(">> ")
            if raw == "":
                raise EOFError
            line = raw.strip()
            if not line:
                continue
            if line == "exit":
                break
            result = runner.evaluate_expression(line)
            _print_side_effects(result)
            if result.status == 'error':
                print(result.format_error(), file=sys.stderr)
                continue
            if result.value is not None:
                print(result.value.inspect(runner.evaluator.printer))
        except EOFError:
            print("\nExiting.")
            break


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gravel", description="Compiles gravel stylesheets to CSS")
    parser.add_argument("files", metavar="FILE", nargs='*', help="stylesheets to compile")
    parser.add_argument("-c", "--config", dest="config", default=None, help="YAML file of compiler options")
    parser.add_argument("-o", "--output", dest="output", default=None, help="write CSS here instead of stdout")
    return parser


async def amain(argv: Optional[List[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    try:
        options = CompilerOptions.from_file(args.config) if args.config else CompilerOptions()
    except (OSError, ValueError) as e:
        print(f"Error: invalid config: {e}", file=sys.stderr)
        return 1
    if args.files:
        return await run_files(args.files, options, args.output)
    await repl(options)
    return 0


def main(argv: Optional[List[str]] = None):
    """Console entry point."""
    try:
        status = asyncio.run(amain(argv))
    except KeyboardInterrupt:
        print("\nExiting.")
        status = 130
    raise SystemExit(status)


if __name__ == "__main__":
    main()
