import asyncio
import shutil
import unittest
from pathlib import Path
from uuid import uuid4

from loguru import logger

from analytic_assistant.logging_config import setup_logging
from analytic_assistant.tools.analysis.sandbox import ScriptSandbox

PROJECT_ROOT = Path(__file__).resolve().parents[1]


class SetupLoggingTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp_dir = PROJECT_ROOT / ".test-artifacts" / f"logging-{uuid4().hex}"
        self._tmp_dir.mkdir(parents=True, exist_ok=True)
        self._main = self._tmp_dir / "main.log"
        self._sandbox = self._tmp_dir / "sandbox.log"

    def tearDown(self) -> None:
        logger.remove()
        shutil.rmtree(self._tmp_dir, ignore_errors=True)

    def _configure(self, **file_options) -> list[str]:
        return setup_logging(
            level="debug",
            consumers=[
                {"type": "file", "path": str(self._main), **file_options},
                {"type": "sandbox", "path": str(self._sandbox)},
                {"type": "syslog"},
            ],
        )

    def test_descriptions_skip_unknown_consumers(self) -> None:
        descriptions = self._configure()
        self.assertEqual(
            [f"file ({self._main}, DEBUG)", f"sandbox ({self._sandbox}, DEBUG)"],
            descriptions,
        )

    def test_script_output_goes_to_the_sandbox_log_only(self) -> None:
        self._configure()
        logger.info("host message")
        result = asyncio.run(ScriptSandbox(timeout_seconds=5).run("print('top seller', 42)\nreturn 1"))
        logger.remove()

        self.assertTrue(result.success, result.error)
        main = self._main.read_text(encoding="utf-8")
        sandbox = self._sandbox.read_text(encoding="utf-8")
        self.assertIn("host message", main)
        self.assertIn("Unknown log consumer type: 'syslog'", main)
        self.assertNotIn("top seller", main)
        self.assertIn("[sandbox] top seller 42", sandbox)
        self.assertNotIn("host message", sandbox)

    def test_main_log_can_opt_in_to_script_output(self) -> None:
        self._configure(include_sandbox=True)
        logger.bind(sandbox=True).info("[sandbox] mirrored")
        logger.remove()

        self.assertIn("mirrored", self._main.read_text(encoding="utf-8"))


if __name__ == "__main__":
    unittest.main()
