"""Local build and deployment archive creation."""

import asyncio
import shlex
import tarfile
from dataclasses import dataclass
from pathlib import Path

from vpsdeploy.config import settings
from vpsdeploy.core.exceptions import StepFailure
from vpsdeploy.utils.logging import get_logger

logger = get_logger("packaging")


@dataclass
class BuildOutput:
    """Captured output of the local build."""

    stdout: str
    stderr: str


class LocalBuilder:
    """Runs the project build and packs its output for transfer."""

    def __init__(
        self,
        project_root: str | Path | None = None,
        build_command: str | None = None,
        output_dir: str | None = None,
        manifests: list[str] | None = None,
    ):
        self.project_root = Path(project_root or settings.project_root).resolve()
        self.build_command = build_command or settings.build_command
        self.output_dir = output_dir or settings.build_output_dir
        self.manifests = manifests if manifests is not None else settings.package_manifests

    async def build(self) -> BuildOutput:
        """Run the build command in the project root."""
        cmd = shlex.split(self.build_command)
        logger.info("packaging.build.started", cmd=self.build_command, cwd=str(self.project_root))

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(self.project_root),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise StepFailure("build", f"Build could not start: {exc}") from exc

        stdout, stderr = await process.communicate()
        stdout_text = stdout.decode(errors="replace") if stdout else ""
        stderr_text = stderr.decode(errors="replace") if stderr else ""

        if process.returncode != 0:
            logger.error("packaging.build.failed", returncode=process.returncode)
            raise StepFailure(
                "build",
                f"Build failed with exit code {process.returncode}: "
                f"{(stderr_text or stdout_text)[:500]}",
                stderr_text,
            )

        logger.info("packaging.build.completed")
        return BuildOutput(stdout=stdout_text, stderr=stderr_text)

    async def package(self, archive_path: str | Path) -> int:
        """Create a gzip tarball of the build output and manifests.

        Returns the archive size in bytes.
        """
        return await asyncio.to_thread(self._package_blocking, Path(archive_path))

    def _package_blocking(self, archive_path: Path) -> int:
        output_dir = self.project_root / self.output_dir
        if not output_dir.is_dir():
            raise StepFailure("package", f"Build output directory not found: {output_dir}")

        archive_path.parent.mkdir(parents=True, exist_ok=True)
        with tarfile.open(archive_path, mode="w:gz") as tar:
            tar.add(str(output_dir), arcname=self.output_dir)
            for name in self.manifests:
                manifest = self.project_root / name
                if not manifest.is_file():
                    raise StepFailure("package", f"Missing manifest file: {name}")
                tar.add(str(manifest), arcname=name)

        size = archive_path.stat().st_size
        logger.info("packaging.archive.created", path=str(archive_path), bytes=size)
        return size
