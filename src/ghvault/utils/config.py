import os

from dataclasses import dataclass

from ghvault.utils.dataModels import DEFAULT_FILES_DIR, DEFAULT_MAX_OBJECT_SIZE, DEFAULT_METADATA_PATH

GITHUB_API = "https://api.github.com"


@dataclass
class StoreConfig:
    """Which repository/branch the store talks to, and its limits."""
    owner: str
    repo_name: str
    branch: str = "main"
    base_url: str = GITHUB_API
    timeout: float = 30.0
    max_object_size: int = DEFAULT_MAX_OBJECT_SIZE
    files_dir: str = DEFAULT_FILES_DIR
    metadata_path: str = DEFAULT_METADATA_PATH

    @property
    def is_valid(self) -> bool:
        return bool(self.owner and self.repo_name)

    @property
    def repo_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/repos/{self.owner}/{self.repo_name}"

    @staticmethod
    def from_env(**overrides) -> "StoreConfig":
        values = {
            "owner": os.getenv("GHVAULT_OWNER", ""),
            "repo_name": os.getenv("GHVAULT_REPO", ""),
            "branch": os.getenv("GHVAULT_BRANCH", "main"),
            "base_url": os.getenv("GHVAULT_BASE_URL", GITHUB_API),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return StoreConfig(**values)


@dataclass
class Session:
    user_type: str
    bearer_token: str

    def __repr__(self) -> str:
        return f"Session(user_type={self.user_type!r}, bearer_token='***')"

    @staticmethod
    def from_env(token: str | None = None, user_type: str = "user") -> "Session":
        return Session(user_type=user_type, bearer_token=token or os.getenv("GITHUB_TOKEN", ""))
