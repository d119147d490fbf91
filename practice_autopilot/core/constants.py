"""
系统常量定义
"""


class SystemConstants:
    """系统常量"""

    # 步骤之间的节奏延迟（秒），只影响观感，不影响正确性
    DEFAULT_PACING_MIN_SECONDS = 0.3
    DEFAULT_PACING_MAX_SECONDS = 1.2

    # AI 结构化解释的最低置信度
    DEFAULT_CONFIDENCE_THRESHOLD = 0.7

    # AI 生成的通用计划最多保留的步骤数
    MAX_GENERATED_STEPS = 6

    # ID 生成策略
    PLAN_ID_PATTERN = "{prefix}-{millis}-{sequence:03d}"
    EVENT_ID_PATTERN = "evt-{millis}-{suffix}"
    STEP_ID_PATTERN = "step-{index}"

    # 回退计划
    FALLBACK_TITLE = "Execute: {command}"
    FALLBACK_STEP_LABEL = "Processing command: {command}"

    # 澄清答案拼接到原始命令时使用的分隔符
    REFINEMENT_SEPARATOR = " - "

    # 默认环境
    DEFAULT_CONFIG_DIR = "config"
    DEFAULT_APP_ENV = "development"
