from enum import Enum
from typing import Any, Dict, Iterable, List, Type

from pydantic import BaseModel, ConfigDict, Field


class ToolName(str, Enum):
    SEARCH = "search"
    PROXY_CALL = "proxy_call"
    EXECUTE_SANDBOX_A = "execute_sandbox_a"
    EXECUTE_SANDBOX_B = "execute_sandbox_b"
    GENERATE_CODE = "generate_code"


class ToolArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")


class SearchArgs(ToolArgs):
    query: str = Field(description="The search query")


class ProxyCallArgs(ToolArgs):
    endpoint: str = Field(description="The API endpoint path, e.g. /openai/v1/models")
    data: Dict[str, Any] = Field(description="The request data")


class CodeArgs(ToolArgs):
    code: str


class GenerateCodeArgs(ToolArgs):
    language: str = Field(description="Programming language (javascript, python, html, css, sql, bash)")
    description: str = Field(description="Description of what the code should do")
    requirements: List[str] = Field(default_factory=list, description="Specific requirements or features")


ARGUMENTS: Dict[ToolName, Type[ToolArgs]] = {
    ToolName.SEARCH: SearchArgs,
    ToolName.PROXY_CALL: ProxyCallArgs,
    ToolName.EXECUTE_SANDBOX_A: CodeArgs,
    ToolName.EXECUTE_SANDBOX_B: CodeArgs,
    ToolName.GENERATE_CODE: GenerateCodeArgs,
}

DESCRIPTIONS: Dict[ToolName, str] = {
    ToolName.SEARCH: "Search the web and return the top results (title, link, snippet).",
    ToolName.PROXY_CALL: "POST JSON data to an endpoint on the API proxy and return its response.",
    ToolName.EXECUTE_SANDBOX_A: (
        "Run a short Python snippet in a restricted sandbox. The snippet is a function body: "
        "use `return` for the result and log(...) for output. Available: math, json, datetime, "
        "re, statistics and basic builtins. No imports, files or network."
    ),
    ToolName.EXECUTE_SANDBOX_B: (
        "Run Python code in a separate interpreter. Variables persist between calls. "
        "stdout and stderr are captured and the value of a trailing expression is returned."
    ),
    ToolName.GENERATE_CODE: "Generate starter code in the specified programming language.",
}

CODE_DESCRIPTIONS: Dict[ToolName, str] = {
    ToolName.EXECUTE_SANDBOX_A: "The snippet to execute",
    ToolName.EXECUTE_SANDBOX_B: "The Python code to execute",
}


def _parameters(name: ToolName) -> Dict[str, Any]:
    schema = ARGUMENTS[name].model_json_schema()
    properties = {}
    for key, prop in schema["properties"].items():
        prop = {k: v for k, v in prop.items() if k not in ("title", "default")}
        if key == "code":
            prop["description"] = CODE_DESCRIPTIONS[name]
        properties[key] = prop
    return {
        "type": "object",
        "properties": properties,
        "required": schema.get("required", []),
        "additionalProperties": False,
    }


def build_tools(enabled: Iterable[str] = tuple(t.value for t in ToolName)) -> List[Dict[str, Any]]:
    enabled = set(enabled)
    return [
        {
            "type": "function",
            "function": {
                "name": name.value,
                "description": DESCRIPTIONS[name],
                "parameters": _parameters(name),
            }
        }
        for name in ToolName
        if name.value in enabled
    ]


TOOLS = build_tools()
