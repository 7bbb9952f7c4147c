"""Task Graph Builder.

Turns declared rules into task nodes. There is one constructor per artifact
kind, and each wraps a fixed command template:

    compile_rust   systems-language crate -> object / IR / asm / rlib
    link_binary    objects + linker script -> ELF
    compile_c      one C source -> one object
    listing        artifact -> objdump -D text listing
    make_binary    artifact -> flat binary (objcopy -O binary)
    report_size    artifact -> section sizes (phony)
    provide_stdlibs  empty bootstrap archives
    track_application_name  fingerprint of the selected application

Every constructor rewrites symbolic dependencies through the rule registry
before the rule is registered, so a rule can only reference rules declared
before it. Only compile_rust consults the module dependency resolver.

Example rules file:
    def rules(b):
        app = b.context.app_path
        b.compile_rust("app", b.context.intermediate_path("app.o"), app,
                       deps=[b.track_application_name()])
        b.link_binary("elf", b.context.build_path("zinc.elf"),
                      deps=[ref("app"), "src/hal/layout.ld"],
                      script="src/hal/layout.ld")
        b.default("elf")
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

from ..errors import ConfigurationError
from .build_context import APP_MARKER, BuildContext
from .build_profiles import with_opt_level
from .rule_registry import DependencyLike, Rule, RuleRegistry, SymbolicRef, normalize_deps
from .size_report import SizeInfo, log_size_info
from .task_graph import FingerprintNode, PhonyNode, TaskGraph, TaskNode
from .tool_runner import CommandRunner, ToolRunner

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# Output extension -> compiler emit kind; anything else uses the default emit
EMIT_KINDS: Dict[str, str] = {
    ".o": "obj",
    ".ll": "llvm-ir",
    ".s": "asm",
}

BOOTSTRAP_ARCHIVES = ("librustrt.a", "libbacktrace.a")


def _unique(paths: Iterable[Path]) -> List[Path]:
    seen: Dict[Path, None] = {}
    for path in paths:
        seen.setdefault(path, None)
    return list(seen)


class TaskGraphBuilder:
    """Builds task nodes for declared rules.

    Example usage:
        context = BuildContext.prepare(settings, root_dir)
        builder = TaskGraphBuilder(context)
        builder.compile_c("isr", context.intermediate_path("isr.o"), "src/isr.c")
        builder.graph.invoke("isr")
    """

    def __init__(
        self,
        context: BuildContext,
        graph: Optional[TaskGraph] = None,
        runner: Optional[CommandRunner] = None,
    ):
        """
        Args:
            context: Prepared build context
            graph: Graph to add nodes to (created at the project root if None)
            runner: Command runner (a subprocess ToolRunner if None)
        """
        self.context = context
        self.graph = graph if graph is not None else TaskGraph(context.root_dir)
        self.runner: CommandRunner = runner if runner is not None else ToolRunner(cwd=context.root_dir)

    @property
    def registry(self) -> RuleRegistry:
        return self.context.registry

    def _path(self, path: PathLike) -> Path:
        return Path(self.graph.key(path))

    def _resolve(self, rule: Rule) -> List[Path]:
        return [self._path(p) for p in self.registry.resolve_deps(rule.deps, rule.name)]

    def _input(self, name: str, source: DependencyLike) -> Path:
        """Resolve a single-input rule's source, which may name another rule."""
        deps = normalize_deps(source)
        if len(deps) != 1:
            raise ConfigurationError(f"Rule {name} takes exactly one source, got {len(deps)}")
        (path,) = self.registry.resolve_deps(list(deps), name)
        return self._path(path)

    # Systems language

    def compile_rust(
        self,
        name: str,
        produce: PathLike,
        source: PathLike,
        deps: Union[None, DependencyLike, Sequence[DependencyLike]] = None,
        *,
        crate_type: Optional[str] = None,
        optimize: Optional[Union[str, int]] = None,
        lto: bool = True,
        llvm_pass: Optional[str] = None,
        ignore_warnings: Sequence[str] = (),
        out_dir: bool = False,
    ) -> TaskNode:
        """Declare a systems-language compilation.

        Prerequisites are the source, the declared deps and every module file
        reachable from the source.

        Args:
            name: Rule name
            produce: Artifact path; its extension picks the emit kind
            source: Crate root
            deps: Additional dependencies (paths or ref("rule"))
            crate_type: Crate type, e.g. "lib" or "rlib"
            optimize: Optimization level replacing the profile's for this rule
            lto: Link-time optimization, applied to .o outputs only
            llvm_pass: Extra codegen pass
            ignore_warnings: Lints to allow
            out_dir: Let the compiler name the output inside build/

        Raises:
            MissingRuleError: If a ref() names an undeclared rule
            SourceNotFoundError: If the source or a module file is missing
            UnresolvedModuleError: If a module declaration matches no file
        """
        rule = Rule(
            name=name,
            kind="compile_rust",
            produce=self._path(produce),
            source=self._path(source),
            deps=normalize_deps(deps),
            crate_type=crate_type,
            optimize=str(optimize) if optimize is not None else None,
            lto=lto,
            llvm_pass=llvm_pass,
            ignore_warnings=tuple(ignore_warnings),
            out_dir=out_dir,
        )
        declared = self._resolve(rule)
        self.registry.register(rule)

        implicit = sorted(self.context.resolver.resolve_transitive(rule.source))  # type: ignore[arg-type]
        prerequisites = _unique([rule.source, *declared, *implicit])  # type: ignore[list-item]

        def action(node: TaskNode) -> None:
            self.runner.run(self.rust_command(rule), target=name)

        return self.graph.add(TaskNode(name, rule.produce, prerequisites, action, tool="rustc"))

    def rust_command(self, rule: Rule) -> List[str]:
        """Compiler command line for a compile_rust rule."""
        ctx = self.context
        output = rule.produce
        flags = list(ctx.rust_flags)
        if rule.optimize is not None:
            flags = with_opt_level(flags, rule.optimize)

        cmd = [ctx.rustc, *flags]
        if rule.lto and output.suffix == ".o":
            cmd += ["-C", "lto"]
        if rule.crate_type:
            cmd += ["--crate-type", rule.crate_type]
        emit = EMIT_KINDS.get(output.suffix)
        if emit:
            cmd += ["--emit", emit]
        cmd += ["-L", str(ctx.build_path())]
        if rule.llvm_pass:
            cmd += ["-C", f"passes={rule.llvm_pass}"]
        if rule.out_dir:
            cmd += ["--out-dir", str(ctx.build_path())]
        else:
            cmd += ["-o", str(output)]
        for warning in rule.ignore_warnings:
            cmd += ["-A", warning]
        cmd.append(str(rule.source))
        return cmd

    # Linking

    def link_binary(
        self,
        name: str,
        produce: PathLike,
        deps: Union[DependencyLike, Sequence[DependencyLike]],
        script: PathLike,
    ) -> TaskNode:
        """Declare a link step.

        The linker script is a prerequisite (editing it relinks) but is
        passed with -T only, never as an object argument.
        """
        rule = Rule(
            name=name,
            kind="link",
            produce=self._path(produce),
            deps=normalize_deps(deps),
            script=self._path(script),
        )
        declared = self._resolve(rule)
        self.registry.register(rule)

        prerequisites = _unique([*declared, rule.script])  # type: ignore[list-item]

        def action(node: TaskNode) -> None:
            self.runner.run(self.link_command(rule, declared), target=name)

        return self.graph.add(TaskNode(name, rule.produce, prerequisites, action, tool="ld"))

    def link_command(self, rule: Rule, inputs: Sequence[Path]) -> List[str]:
        """Linker command line; ``inputs`` minus the script become object arguments."""
        ctx = self.context
        objects = [str(p) for p in _unique(inputs) if p != rule.script]
        map_file = ctx.build_path(f"{rule.produce.stem}.map")
        return [
            ctx.tool("ld"),
            "-Map", str(map_file),
            "-o", str(rule.produce),
            "-T", str(rule.script),
            *objects,
            *ctx.ld_flags,
            "--gc-sections",
            "-lgcc",
        ]

    # C

    def compile_c(
        self,
        name: str,
        produce: PathLike,
        source: PathLike,
        deps: Union[None, DependencyLike, Sequence[DependencyLike]] = None,
    ) -> TaskNode:
        """Declare a C compilation of one source into one object."""
        rule = Rule(
            name=name,
            kind="compile_c",
            produce=self._path(produce),
            source=self._path(source),
            deps=normalize_deps(deps),
        )
        declared = self._resolve(rule)
        self.registry.register(rule)

        prerequisites = _unique([rule.source, *declared])  # type: ignore[list-item]

        def action(node: TaskNode) -> None:
            ctx = self.context
            cmd = [ctx.tool("gcc"), *ctx.c_flags, "-o", str(rule.produce), "-c", str(rule.source)]
            self.runner.run(cmd, target=name)

        return self.graph.add(TaskNode(name, rule.produce, prerequisites, action, tool="gcc"))

    # Post-processing

    def listing(self, name: str, produce: PathLike, source: DependencyLike) -> TaskNode:
        """Declare a disassembly listing of ``source`` captured into ``produce``."""
        rule = Rule(name=name, kind="listing", produce=self._path(produce), deps=normalize_deps(source))
        artifact = self._input(name, source)
        self.registry.register(rule)

        def action(node: TaskNode) -> None:
            self.runner.run([self.context.tool("objdump"), "-D", str(artifact)], target=name, stdout_path=rule.produce)

        return self.graph.add(TaskNode(name, rule.produce, [artifact], action, tool="objdump"))

    def make_binary(self, name: str, produce: PathLike, source: DependencyLike) -> TaskNode:
        """Declare extraction of a flat binary image from ``source``."""
        rule = Rule(name=name, kind="binary", produce=self._path(produce), deps=normalize_deps(source))
        artifact = self._input(name, source)
        self.registry.register(rule)

        def action(node: TaskNode) -> None:
            cmd = [self.context.tool("objcopy"), str(artifact), str(rule.produce), "-O", "binary"]
            self.runner.run(cmd, target=name)

        return self.graph.add(TaskNode(name, rule.produce, [artifact], action, tool="objcopy"))

    def report_size(self, name: str, source: DependencyLike) -> TaskNode:
        """Declare a phony step that logs the section sizes of ``source``."""
        artifact = self._input(name, source)

        def action(node: TaskNode) -> None:
            output = self.runner.capture([self.context.tool("size"), str(artifact)], target=name)
            log_size_info(artifact, SizeInfo.parse(output))

        return self.graph.add(PhonyNode(name, [artifact], action, tool="size"))

    # Support

    def provide_stdlibs(self) -> List[TaskNode]:
        """Declare the empty runtime archives the compiler expects in build/.

        The archives are required by every invocation, so they are built
        before any requested target.
        """
        nodes = []
        for archive in BOOTSTRAP_ARCHIVES:
            produce = self.context.build_path(archive)
            rule_name = Path(archive).stem
            self.registry.register(Rule(name=rule_name, kind="archive", produce=produce))

            def action(node: TaskNode) -> None:
                self.runner.run([self.context.tool("ar"), "cr", str(node.output)], target=node.name)

            node = self.graph.add(TaskNode(rule_name, produce, (), action, tool="ar"))
            self.graph.require(rule_name)
            nodes.append(node)
        return nodes

    def track_application_name(self) -> Path:
        """Declare the application fingerprint and return its marker path.

        Use the returned path as a dependency of rules that embed the
        application, so switching applications rebuilds them.
        """
        marker = self.context.build_path(APP_MARKER)
        self.registry.register(Rule(name="app_name", kind="fingerprint", produce=marker))
        self.graph.add(FingerprintNode("app_name", marker, self.context.app_name))
        return marker

    def alias(self, name: str, deps: Union[DependencyLike, Sequence[DependencyLike]]) -> TaskNode:
        """Declare a phony target that builds ``deps``."""
        paths = [self._path(p) for p in self.registry.resolve_deps(normalize_deps(deps), name)]
        return self.graph.add(PhonyNode(name, paths))

    def default(self, target: Union[str, SymbolicRef]) -> None:
        """Set the target built when none is requested."""
        self.graph.default_target = target.name if isinstance(target, SymbolicRef) else target
