#!/usr/bin/env python3
"""
classtweak: command-line interface

Usage:
    classtweak check <rules...>                    Parse rule files and summarise them
    classtweak format <rules> [--version N]        Rewrite a rule file in canonical form
    classtweak transitive <rules>                  Extract only the transitive- rules
    classtweak validate <rules...> --classpath P   Check rules against compiled classes
    classtweak apply <rules...> <input> -o <out>   Transform a class, directory or jar
"""

from __future__ import annotations

import argparse
import logging
import sys
import textwrap
import zipfile
from pathlib import Path
from typing import Optional

from classtweak import __version__
from classtweak.decorators import transitive_only
from classtweak.environment import ClassPathEnvironment
from classtweak.errors import ClassTweakError
from classtweak.model import ClassTweaker
from classtweak.reader import ClassTweakerReader, read_version
from classtweak.transform import ClassTransformer
from classtweak.validator import validate
from classtweak.writer import ClassTweakerWriter

logger = logging.getLogger(__name__)


# ============================================================================
# Formatting helpers
# ============================================================================

class C:
    """ANSI colors."""
    BOLD = "\033[1m"
    DIM = "\033[2m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    CYAN = "\033[36m"
    RESET = "\033[0m"

    @staticmethod
    def off():
        C.BOLD = C.DIM = C.RED = C.GREEN = C.YELLOW = C.CYAN = C.RESET = ""


def header(text: str) -> str:
    return f"\n{C.BOLD}{C.CYAN}{'─' * 60}{C.RESET}\n{C.BOLD}  {text}{C.RESET}\n{C.BOLD}{C.CYAN}{'─' * 60}{C.RESET}"


def ok(text: str) -> str:
    return f"  {C.GREEN}✓{C.RESET} {text}"


def warn(text: str) -> str:
    return f"  {C.YELLOW}⚠{C.RESET} {text}"


def fail(text: str) -> str:
    return f"  {C.RED}✗{C.RESET} {text}"


def dim(text: str) -> str:
    return f"{C.DIM}{text}{C.RESET}"


# ============================================================================
# Loading
# ============================================================================

def load_rules(paths: list[str], namespace: Optional[str] = None) -> ClassTweaker:
    """Read rule files into one model; each file's stem is its source id."""
    model = ClassTweaker()
    for path in paths:
        p = Path(path)
        ClassTweakerReader(model).read(p.read_bytes(), namespace, source_id=p.stem)
    return model


def _emit(text: str, output: Optional[str]) -> None:
    if output:
        Path(output).write_text(text, encoding="utf-8")
        print(ok(f"Written to {output}"))
    else:
        sys.stdout.write(text)


# ============================================================================
# Commands
# ============================================================================

def cmd_check(args):
    """Parse rule files and summarise what they touch."""
    model = load_rules(args.rules, args.namespace)

    print(header(f"CHECK: {', '.join(args.rules)}"))
    print(f"  {C.DIM}Namespace: {model.namespace}{C.RESET}")

    rules = model.all_class_rules()
    members = sum(len(r.methods) + len(r.fields) for r in rules.values())
    print(ok(f"{len(rules)} class(es) with access rules, {members} member rule(s)"))

    for owner, extensions in model.all_enum_extensions().items():
        print(ok(f"{owner}: +{', '.join(extensions)}"))
    for owner, interfaces in model.all_injected_interfaces().items():
        print(ok(f"{owner} implements {', '.join(i.interface_name for i in interfaces)}"))

    print(f"\n  Targets: {len(model.targets)}")
    for target in sorted(model.targets):
        print(f"    {dim(target)}")


def cmd_format(args):
    """Re-emit a rule file canonically, optionally at another version."""
    content = Path(args.rules).read_bytes()
    model = ClassTweaker()
    ClassTweakerReader(model).read(content, source_id=Path(args.rules).stem)
    writer = ClassTweakerWriter(args.version or read_version(content))
    model.accept(writer)
    _emit(writer.write_string(), args.output)


def cmd_transitive(args):
    """Keep only the rules that propagate to dependents."""
    content = Path(args.rules).read_bytes()
    writer = ClassTweakerWriter(read_version(content))
    ClassTweakerReader(transitive_only(writer)).read(content, source_id=Path(args.rules).stem)
    _emit(writer.write_string(), args.output)


def cmd_validate(args):
    """Check every referenced symbol against a class path."""
    model = load_rules(args.rules, args.namespace)
    env = ClassPathEnvironment()
    for path in args.classpath:
        env.add_path(path)

    print(header(f"VALIDATE: {', '.join(args.rules)}"))
    print(f"  {C.DIM}Class path: {len(env)} class(es){C.RESET}")
    validate(model, env)
    print(ok("All referenced classes and members exist"))


def cmd_apply(args):
    """Transform a class file, a directory of classes or a jar."""
    model = load_rules(args.rules, args.namespace)
    transformer = ClassTransformer(model)
    source = Path(args.input)
    output = Path(args.output)

    print(header(f"APPLY: {source} -> {output}"))
    if source.is_dir():
        changed = _apply_directory(transformer, source, output)
    elif zipfile.is_zipfile(source):
        changed = _apply_jar(transformer, source, output)
    else:
        generated: dict[str, bytes] = {}
        data = source.read_bytes()
        result = transformer.transform(data, generated.__setitem__)
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(result)
        for name, body in generated.items():
            (output.parent / f"{name.rsplit('/', 1)[-1]}.class").write_bytes(body)
        changed = int(result is not data)
    print(ok(f"{changed} class(es) rewritten"))


def _apply_directory(transformer: ClassTransformer, source: Path, output: Path) -> int:
    changed = 0
    generated: dict[str, bytes] = {}
    for file in sorted(source.rglob("*")):
        if file.is_dir():
            continue
        target = output / file.relative_to(source)
        target.parent.mkdir(parents=True, exist_ok=True)
        data = file.read_bytes()
        if file.suffix == ".class":
            result = transformer.transform(data, generated.__setitem__)
            if result is not data:
                changed += 1
                print(f"    {dim(str(file.relative_to(source)))}")
            data = result
        target.write_bytes(data)
    for name, body in generated.items():
        path = output / f"{name}.class"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(body)
        print(f"    {dim(name + '.class')} {C.GREEN}(generated){C.RESET}")
    return changed


def _apply_jar(transformer: ClassTransformer, source: Path, output: Path) -> int:
    changed = 0
    generated: dict[str, bytes] = {}
    output.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(source) as src, zipfile.ZipFile(output, "w", zipfile.ZIP_DEFLATED) as dst:
        for info in src.infolist():
            data = src.read(info)
            if info.filename.endswith(".class") and not info.filename.startswith("META-INF/"):
                result = transformer.transform(data, generated.__setitem__)
                if result is not data:
                    changed += 1
                    print(f"    {dim(info.filename)}")
                data = result
            dst.writestr(info, data)
        for name, body in generated.items():
            dst.writestr(f"{name}.class", body)
            print(f"    {dim(name + '.class')} {C.GREEN}(generated){C.RESET}")
    return changed


# ============================================================================
# CLI setup
# ============================================================================

def main(argv: Optional[list[str]] = None):
    parser = argparse.ArgumentParser(
        prog="classtweak",
        description="classtweak: widen access, extend enums and inject interfaces in JVM classes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""
        examples:
          classtweak check mymod.classtweaker
          classtweak format mymod.accesswidener --version 3 -o mymod.classtweaker
          classtweak transitive mymod.classtweaker
          classtweak validate mymod.classtweaker --classpath game.jar
          classtweak apply mymod.classtweaker game.jar -o patched.jar
        """),
    )
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log transform details")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    sub = parser.add_subparsers(dest="command", help="Command to run")

    # check
    p = sub.add_parser("check", help="Parse rule files and summarise them")
    p.add_argument("rules", nargs="+", help="Rule files")
    p.add_argument("--namespace", help="Required namespace")

    # format
    p = sub.add_parser("format", aliases=["fmt"], help="Rewrite a rule file canonically")
    p.add_argument("rules", help="Rule file")
    p.add_argument("--version", type=int, choices=[1, 2, 3], dest="version",
                   help="Output format version (1, 2: accessWidener; 3: classTweaker v1)")
    p.add_argument("-o", "--output", help="Output file path")

    # transitive
    p = sub.add_parser("transitive", help="Extract only transitive- rules")
    p.add_argument("rules", help="Rule file")
    p.add_argument("-o", "--output", help="Output file path")

    # validate
    p = sub.add_parser("validate", help="Check rules against compiled classes")
    p.add_argument("rules", nargs="+", help="Rule files")
    p.add_argument("--classpath", action="append", required=True,
                   help="Class directory, jar or class file (repeatable)")
    p.add_argument("--namespace", help="Required namespace")

    # apply
    p = sub.add_parser("apply", help="Transform a class file, directory or jar")
    p.add_argument("rules", nargs="+", help="Rule files")
    p.add_argument("input", help="Class file, class directory or jar")
    p.add_argument("-o", "--output", required=True, help="Output path")
    p.add_argument("--namespace", help="Required namespace")

    args = parser.parse_args(argv)

    if args.no_color:
        C.off()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return

    # Dispatch
    commands = {
        "check": cmd_check,
        "format": cmd_format, "fmt": cmd_format,
        "transitive": cmd_transitive,
        "validate": cmd_validate,
        "apply": cmd_apply,
    }

    handler = commands.get(args.command)
    try:
        handler(args)
    except FileNotFoundError as e:
        print(fail(f"File not found: {e}"))
        sys.exit(1)
    except ClassTweakError as e:
        print(fail(f"{type(e).__name__}: {e}"))
        sys.exit(1)


if __name__ == "__main__":
    main()
