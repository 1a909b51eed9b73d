# router/tools.py
from harvester.router.models import ToolSpec

SET_CONTEXT         = "setContext"
RETURN_CONTEXT      = "return_context"
GET_MORE_CONTEXT    = "getMoreContext"
RETURN_DESCRIPTION  = "return_description"


def set_context_tool(id_type: str = "number") -> ToolSpec:
    """Tool del modo batch: un array de {id, context}."""
    return ToolSpec(
        name        = SET_CONTEXT,
        description = "Always use this function to return the context.",
        parameters  = {
            "type": "object",
            "properties": {
                "contexts": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "id": {
                                "type": id_type,
                                "description": "Key ID of the string. This is the ID of the string that you are providing context for.",
                            },
                            "context": {
                                "type": "string",
                                "description": "Context of the string. This is the context that you are providing for the string.",
                            },
                        },
                        "required": ["id", "context"],
                    },
                },
            },
            "required": ["contexts"],
        },
    )


def return_context_tool() -> ToolSpec:
    """Tool terminal del modo agente: el contexto del único string en curso."""
    return ToolSpec(
        name        = RETURN_CONTEXT,
        description = "Return the final context for the string. Use an empty text if no usage was found.",
        parameters  = {
            "type": "object",
            "properties": {
                "context": {"type": "string", "description": "Context of the string"},
            },
            "required": ["context"],
        },
    )


def get_more_context_tool(id_type: str = "number") -> ToolSpec:
    return ToolSpec(
        name        = GET_MORE_CONTEXT,
        description = "Use this function to get more context for string.",
        parameters  = {
            "type": "object",
            "properties": {
                "strings": {
                    "type": "array",
                    "description": "Array of errors to set",
                    "items": {
                        "type": "object",
                        "properties": {
                            "id": {
                                "type": id_type,
                                "description": "This is the ID of the string that have not sufficient context.",
                            },
                            "error": {
                                "type": "string",
                                "description": "Error that describe problems with provided context.",
                            },
                        },
                        "required": ["id", "error"],
                    },
                },
            },
            "required": ["strings"],
        },
    )


def return_description_tool() -> ToolSpec:
    return ToolSpec(
        name        = RETURN_DESCRIPTION,
        description = "Return the final project description text.",
        parameters  = {
            "type": "object",
            "properties": {
                "description": {"type": "string", "description": "Project description text"},
            },
            "required": ["description"],
        },
    )


def id_type_for(ids) -> str:
    """number si todos los ids son enteros; string en cualquier otro caso."""
    return "number" if all(isinstance(i, int) and not isinstance(i, bool) for i in ids) else "string"
