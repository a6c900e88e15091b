"""First-run project exploration, remembered in the ``indexer`` collection."""

from .history import Storage

INDEX_COLLECTION = "indexer"

INDEX_PROMPT = (
    "Explore the project codebase. Use the directory listing and file reading "
    "tools, find the most interesting paths and explore them in detail, "
    "including reading files. Look for files that reveal the type of project "
    "(pyproject.toml, package.json, Cargo.toml, go.mod, etc.). After scanning, "
    "give a short summary of the project."
)


class Indexer:
    def __init__(self, storage: Storage):
        self.data = storage.collection(INDEX_COLLECTION)
        self.in_progress = False

    def is_project_indexed(self) -> bool:
        return bool(self.data.find_by(lambda e: e.get("indexed") is True))

    def set_project_indexed(self, indexed: bool = True) -> None:
        self.data.add({"indexed": indexed})

    def add_summary(self, content: str) -> None:
        self.data.add({"type": "summary", "content": content})

    def summaries(self) -> list[str]:
        return [
            e.get("content", "")
            for e in self.data.find_by(lambda e: e.get("type") == "summary")
        ]
