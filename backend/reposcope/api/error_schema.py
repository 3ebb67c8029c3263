ERROR_RESPONSE_SCHEMA = {
    "type": "object",
    "properties": {
        "error": {
            "type": "object",
            "properties": {
                "code": {"type": "string", "example": "NOT_FOUND"},
                "message": {"type": "string", "example": "Repository not found"},
                "details": {"type": "object", "example": {}},
            },
            "required": ["code", "message", "details"],
            "example": {
                "code": "NOT_FOUND",
                "message": "Repository not found",
                "details": {},
            },
        }
    },
    "required": ["error"],
    "example": {
        "error": {
            "code": "NOT_FOUND",
            "message": "Repository not found",
            "details": {},
        }
    },
}


def error_response(description: str) -> dict:
    return {
        "description": description,
        "content": {"application/json": {"schema": ERROR_RESPONSE_SCHEMA}},
    }
