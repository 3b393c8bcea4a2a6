"""
On-disk layout of a customer namespace.

    <workspace>/<customers_dir>/<customer>/projects/<project>/metadata.yaml
    .../<project>/<agent>/metadata.yaml
    .../<project>/<agent>/<flow>/metadata.yaml
    .../<project>/<agent>/<flow>/<skill>/metadata.yaml
    .../<project>/<agent>/<flow>/<skill>/<skill>.<ext>
    .../projects/flows.yaml                      (projection document)
    <workspace>/<customers_dir>/<customer>/attributes.yaml  (customer attributes)

    <workspace>/<state_dir>/<customer>/map.json
    <workspace>/<state_dir>/<customer>/hashes.json
    <workspace>/<state_dir>/<customer>/tokens.json
"""

from __future__ import annotations

from pathlib import Path

from agentmirror.core.tree.models import EntityAddress, RunnerKind

METADATA_FILE = "metadata.yaml"
PROJECTION_FILE = "flows.yaml"
ATTRIBUTES_FILE = "attributes.yaml"
MAP_FILE = "map.json"
LEDGER_FILE = "hashes.json"
TOKENS_FILE = "tokens.json"


class TreeLayout:
    """
    Path arithmetic for one customer namespace.

    Example:
        >>> layout = TreeLayout(Path("/work"), "acme")
        >>> layout.metadata_path(EntityAddress("shop", "support"))
        PosixPath('/work/customers/acme/projects/shop/support/metadata.yaml')
    """

    def __init__(
        self,
        workspace: Path,
        customer_idn: str,
        *,
        customers_dir: str = "customers",
        state_dir: str = ".agentmirror",
    ) -> None:
        self.workspace = workspace.resolve()
        self.customer_idn = customer_idn
        self.customer_dir = self.workspace / customers_dir / customer_idn
        self.projects_dir = self.customer_dir / "projects"
        self.state_dir = self.workspace / state_dir / customer_idn

    @property
    def map_path(self) -> Path:
        return self.state_dir / MAP_FILE

    @property
    def ledger_path(self) -> Path:
        return self.state_dir / LEDGER_FILE

    @property
    def tokens_path(self) -> Path:
        return self.state_dir / TOKENS_FILE

    @property
    def projection_path(self) -> Path:
        return self.projects_dir / PROJECTION_FILE

    @property
    def attributes_path(self) -> Path:
        return self.customer_dir / ATTRIBUTES_FILE

    def ensure(self) -> None:
        """Create the state and projects directories if missing."""
        self.state_dir.mkdir(parents=True, exist_ok=True)
        self.projects_dir.mkdir(parents=True, exist_ok=True)

    def entity_dir(self, address: EntityAddress) -> Path:
        path = self.projects_dir
        for part in address.display.split("/"):
            path = path / part
        return path

    def metadata_path(self, address: EntityAddress) -> Path:
        return self.entity_dir(address) / METADATA_FILE

    def script_path(self, address: EntityAddress, runner: RunnerKind) -> Path:
        """Canonical script path of a skill: <skill-dir>/<slug>.<ext>."""
        return self.entity_dir(address) / f"{address.slug}.{runner.extension}"

    def key(self, path: Path) -> str:
        """
        Canonical ledger key for a file: POSIX path relative to the workspace.

        Paths outside the workspace fall back to their absolute POSIX form.
        """
        resolved = path if path.is_absolute() else self.workspace / path
        try:
            return resolved.relative_to(self.workspace).as_posix()
        except ValueError:
            return resolved.as_posix()

    def address_of(self, folder: Path) -> EntityAddress:
        """Inverse of entity_dir for a folder inside projects/."""
        parts = folder.relative_to(self.projects_dir).parts
        if not 1 <= len(parts) <= 4:
            raise ValueError(f"{folder} is not an entity folder")
        return EntityAddress(*parts)
