"""
Code generation: running host tools on input files.

The generated source for (tool, input file) is cached under
``codegen:<tool>:<input>``. Its fingerprint covers the tool build, the input
content and the invocation arguments, so re-running with unchanged inputs
does not start the tool at all.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from qtbuildkit.core.build_root import BuildDirectoryCoordinator, codegen_key
from qtbuildkit.core.exceptions import CodeGenFailed
from qtbuildkit.core.fingerprint import Fingerprint
from qtbuildkit.core.process import ProcessRunner
from qtbuildkit.core.stats import BuildStats
from qtbuildkit.hosttools.builder import HostTool

logger = logging.getLogger(__name__)


@dataclass
class GeneratedSource:
    """
    Output of one host tool invocation.

    Attributes:
        tool: Name of the tool that produced the file
        input_file: Input the tool was run on
        path: Generated file inside the build root
        fingerprint: Fingerprint of the generation inputs
        from_cache: True if no invocation was needed
    """

    tool: str
    input_file: Path
    path: Path
    fingerprint: str
    from_cache: bool = False

    def as_dict(self) -> dict:
        return {
            "tool": self.tool,
            "input_file": str(self.input_file),
            "fingerprint": self.fingerprint,
        }


def expand_args(template: Sequence[str], input_file: Path, output_file: Path) -> List[str]:
    """Substitute ``{input}`` and ``{output}`` in an argument template."""
    return [
        arg.replace("{input}", str(input_file)).replace("{output}", str(output_file))
        for arg in template
    ]


class CodeGenStage:
    """
    Runs host tools and records their outputs in the build root.

    Attributes:
        coordinator: Build root coordinator
        runner: Process runner (shared with the build for cancellation)
        stats: Work counters
        wait: Wait for a concurrent generator instead of failing with Busy
    """

    def __init__(
        self,
        coordinator: BuildDirectoryCoordinator,
        runner: Optional[ProcessRunner] = None,
        stats: Optional[BuildStats] = None,
        wait: bool = True,
    ):
        self.coordinator = coordinator
        self.runner = runner or ProcessRunner()
        self.stats = stats or BuildStats()
        self.wait = wait

    def generate(
        self, tool: HostTool, input_file: Path, args: Optional[Sequence[str]] = None
    ) -> GeneratedSource:
        """
        Return the source generated by running ``tool`` on ``input_file``.

        Args:
            tool: Built host tool
            input_file: File to process
            args: Argument template overriding the tool's default

        Raises:
            CodeGenFailed: If the tool cannot be started, exits with a non-zero
                status or does not produce its output file
            BuildCancelled: If the build is cancelled while the tool runs
        """
        input_file = Path(input_file).resolve()
        template = list(args) if args is not None else list(tool.spec.args)
        output_name = tool.spec.output_name(input_file)

        if not input_file.is_file():
            raise CodeGenFailed(tool.name, input_file, -1, "input file not found")

        key = codegen_key(tool.name, input_file)
        fingerprint = (
            Fingerprint("codegen")
            .add("tool", tool.name)
            .add("tool_fingerprint", tool.fingerprint)
            .add_file("input", input_file)
            .add("args", template)
            .add("output", output_name)
            .digest()
        )

        record = self.coordinator.find(key, fingerprint)
        if record is not None:
            logger.debug(f"{output_name} from {input_file.name} is up to date")
            self.stats.hit("codegen")
            return GeneratedSource(tool.name, input_file, record.artifacts[0], fingerprint, True)

        with self.coordinator.reserve(key, wait=self.wait) as lease:
            record = self.coordinator.find(key, fingerprint)
            if record is not None:
                self.stats.hit("codegen")
                return GeneratedSource(
                    tool.name, input_file, record.artifacts[0], fingerprint, True
                )

            output_file = lease.staging_dir / output_name
            cmd = [str(tool.executable), *expand_args(template, input_file, output_file)]
            logger.info(f"Running {tool.name} on {input_file.name}")
            try:
                result = self.runner.run(cmd, cwd=lease.staging_dir)
            except OSError as e:
                raise CodeGenFailed(
                    tool.name, input_file, -1, f"cannot run {tool.executable}: {e}"
                ) from e
            self.stats.increment("codegen_invocations")

            if not result.ok:
                raise CodeGenFailed(tool.name, input_file, result.returncode, result.stderr)
            if not output_file.is_file():
                raise CodeGenFailed(
                    tool.name,
                    input_file,
                    result.returncode,
                    f"tool exited successfully but did not write {output_name}",
                )

            record = self.coordinator.record(
                lease, fingerprint, [output_name], extra={"input": str(input_file)}
            )

        return GeneratedSource(tool.name, input_file, record.artifacts[0], fingerprint, False)


__all__ = ["CodeGenStage", "GeneratedSource", "expand_args"]
