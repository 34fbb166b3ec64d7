"""
Prompt templates offered to the client.
"""
from pydantic import BaseModel, Field

from user_directory.utils.capability_decorator import mcp_prompt


class FakeUserArguments(BaseModel):
    """Arguments for the fake user prompt."""
    name: str = Field(description="Name of the user to generate")


@mcp_prompt(
    name="generate-fake-user",
    title="Generate Fake User",
    description="Generate a fake user based on a given name",
    input_model=FakeUserArguments,
)
def generate_fake_user(name: str) -> str:
    return (
        f"Generate a fake user with the name {name}. The user should have a "
        "realistic email, address, and phone number."
    )
