"""System prompt assembly from the packaged template and the tool registry."""

from datetime import datetime
from pathlib import Path

from .errors import ConfigError
from .registry import ToolRegistry

DEFAULT_SYSTEM_PROMPT_FILE = Path(__file__).parent / "system_prompt.txt"


class SystemPromptPreprocessor:
    """Fill ``%tools_list%`` and ``%tools_shots%`` in the prompt template.

    The rendered prompt is cached, so the date stamp reflects the first call.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        template_path: str | Path = DEFAULT_SYSTEM_PROMPT_FILE,
        *,
        include_date: bool = True,
    ):
        self.registry = registry
        self.template_path = Path(template_path)
        self.include_date = include_date
        self._cache: str | None = None

    def tools_list(self) -> str:
        return "\n".join(
            f"*   `{d.name}`: {d.description}." for d in self.registry.descriptors()
        )

    def tools_shots(self) -> str:
        blocks = [
            f"Tool: {d.name}\nExamples:\n{d.few_shot_examples}\n"
            for d in self.registry.descriptors()
            if d.few_shot_examples
        ]
        return "\n".join(blocks)

    def process(self) -> str:
        if self._cache is not None:
            return self._cache
        try:
            template = self.template_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise ConfigError(
                f"system prompt template not found: {self.template_path}"
            ) from None
        except OSError as e:
            raise ConfigError(
                f"cannot read system prompt template {self.template_path}: {e}"
            ) from e

        prompt = template.replace("%tools_list%", self.tools_list())
        prompt = prompt.replace("%tools_shots%", self.tools_shots())
        if self.include_date:
            now = datetime.now().astimezone()
            prompt += f"\n\nCurrent date and time: {now.strftime('%Y-%m-%d %H:%M %Z')}"
        self._cache = prompt
        return prompt
