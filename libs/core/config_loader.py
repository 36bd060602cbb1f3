import json
import logging
from typing import Any, Dict

from .project_paths import get_project_root

logger = logging.getLogger(__name__)


def load_root_config() -> Dict[str, Any]:
    """
    加载项目根目录 `config.json`（不依赖工作目录）。

    注意：
    - 配置优先级应由调用方实现：环境变量 > .env > config.json
    - 文件缺失或损坏时返回空配置
    """
    config_path = get_project_root() / "config.json"
    if not config_path.exists():
        return {}
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable config.json: %s", e)
        return {}
    return data if isinstance(data, dict) else {}
