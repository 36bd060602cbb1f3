import os
from functools import lru_cache
from pathlib import Path

ROOT_ENV_VAR = "COMPANION_PROJECT_ROOT"


@lru_cache(maxsize=1)
def get_project_root() -> Path:
    """
    获取项目根目录（不依赖工作目录），`.env` 与 `config.json` 都从这里读。

    规则：
    - 环境变量 COMPANION_PROJECT_ROOT 优先（打包安装后源码不在仓库里）
    - 否则从当前文件向上找同时包含 `pyproject.toml` 与 `apps/` 的目录
    - 都找不到则退化为 libs 的上一级
    """
    override = os.getenv(ROOT_ENV_VAR, "").strip()
    if override:
        return Path(override).expanduser().resolve()

    here = Path(__file__).resolve()
    for parent in here.parents:
        if (parent / "pyproject.toml").is_file() and (parent / "apps").is_dir():
            return parent
    return here.parents[2]
