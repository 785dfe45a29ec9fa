from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CustomBaseModel(BaseModel):
    """Custom base model for all schemas.
    - camelCase on the wire, snake_case in python
    - both spellings accepted on input
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Message(CustomBaseModel):
    message: str = ""
