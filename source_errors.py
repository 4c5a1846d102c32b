'''
 # source_errors.py
 # 组件：书源规则引擎的异常类型
 # 版权所有：2025 Breeze-mi
 # 日期：2025/10/12
'''


class BookSourceError(Exception):
    """书源引擎异常基类"""


class RuleMissing(BookSourceError):
    """缺少必需的列表/正文规则，整个解析失败"""

    def __init__(self, rule_name: str, source_name: str = ""):
        self.rule_name = rule_name
        self.source_name = source_name
        where = f"（书源: {source_name}）" if source_name else ""
        super().__init__(f"缺少规则 {rule_name}{where}")


class ParseError(BookSourceError):
    """JSON 模式下响应不是合法 JSON，或取不到内容"""


class ScriptError(BookSourceError):
    """脚本执行异常，携带 JS 引擎给出的原始消息"""

    def __init__(self, message: str, script: str = ""):
        self.message = message
        self.script = script
        super().__init__(message)


# 与书源生态中的叫法保持一致
ScriptException = ScriptError


class InvalidPatternError(BookSourceError):
    """OnlyOne 规则中的正则无法编译"""

    def __init__(self, pattern: str, reason: str = ""):
        self.pattern = pattern
        super().__init__(f"无效的正则: {pattern} {reason}".strip())


class SourceNotFound(BookSourceError):
    """书源仓库中找不到指定 URL 的书源"""


__all__ = [
    "BookSourceError",
    "RuleMissing",
    "ParseError",
    "ScriptError",
    "ScriptException",
    "InvalidPatternError",
    "SourceNotFound",
]
