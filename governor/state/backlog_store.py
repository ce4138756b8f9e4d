"""Backlog store over state/backlog.yaml.

Loads and saves the backlog file. Saves are atomic: the YAML is written to a
temporary file next to the target and moved into place with os.replace, so a
crash never leaves a half-written backlog.
"""

import logging
import os
import tempfile
from pathlib import Path

import yaml
from pydantic import ValidationError

from governor.config import BACKLOG_FILE, STATE_DIR, ItemStatus
from governor.errors import BacklogParseError, ItemNotFoundError

from .models import BacklogFile, BacklogItem

logger = logging.getLogger(__name__)


class BacklogStore:
    """Manages state/backlog.yaml read/write operations.

    Example backlog.yaml:
        backlog:
          - id: 42
            title: "Loudness meter"
            status: candidate
            priority: 1
            size: S
            owner: PO
            story: "As a producer I want integrated LUFS..."
    """

    def __init__(self, workdir: Path | str):
        """Initialize the store.

        Args:
            workdir: Repository root containing state/backlog.yaml
        """
        self.workdir = Path(workdir)
        self.backlog_path = self.workdir / STATE_DIR / BACKLOG_FILE

    def load_file(self) -> BacklogFile:
        """Load and validate the whole backlog file.

        Raises:
            BacklogParseError: If the file is missing, not YAML, or invalid
        """
        try:
            with open(self.backlog_path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except FileNotFoundError:
            raise BacklogParseError(
                f"Backlog file not found: {self.backlog_path}", self.backlog_path
            ) from None
        except (OSError, yaml.YAMLError) as e:
            raise BacklogParseError(
                f"Could not parse {self.backlog_path}: {e}", self.backlog_path
            ) from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise BacklogParseError(
                f"Expected a mapping at the root of {self.backlog_path}", self.backlog_path
            )

        try:
            return BacklogFile.model_validate(data)
        except ValidationError as e:
            raise BacklogParseError(
                f"Invalid backlog data in {self.backlog_path}: {e}", self.backlog_path
            ) from e

    def load(self, item_id: int) -> BacklogItem | None:
        """Load a single item, or None when no item has this id.

        Raises:
            BacklogParseError: If the backlog file cannot be parsed
        """
        return self.load_file().find(item_id)

    def get(self, item_id: int) -> BacklogItem:
        """Load a single item.

        Raises:
            ItemNotFoundError: If no item has this id
            BacklogParseError: If the backlog file cannot be parsed
        """
        item = self.load(item_id)
        if item is None:
            raise ItemNotFoundError(item_id)
        return item

    def save(self, item: BacklogItem) -> None:
        """Replace the stored item with the same id.

        Raises:
            ItemNotFoundError: If the item is not in the backlog
        """
        backlog = self.load_file()
        for index, existing in enumerate(backlog.backlog):
            if existing.id == item.id:
                backlog.backlog[index] = item
                break
        else:
            raise ItemNotFoundError(item.id)

        self.save_file(backlog)
        logger.info(f"Saved backlog item {item.id} (status={item.status.value})")

    def save_file(self, backlog: BacklogFile) -> None:
        """Atomically write the whole backlog file."""
        data = backlog.model_dump(mode="json", exclude_none=True)

        self.backlog_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=".backlog.", suffix=".tmp.yaml", dir=self.backlog_path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
            os.replace(tmp_name, self.backlog_path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def create_item(self, title: str, story: str) -> BacklogItem:
        """Append a new candidate item with the next free id.

        Args:
            title: Item title
            story: Item story/description

        Returns:
            The created item
        """
        backlog = self.load_file()
        item = BacklogItem(
            id=backlog.next_id(),
            title=title.strip(),
            status=ItemStatus.CANDIDATE,
            priority=1,
            size="S",
            owner="PO",
            story=story.strip(),
        )
        backlog.backlog.append(item)
        self.save_file(backlog)
        logger.info(f"Created backlog item {item.id}: {item.title}")
        return item
