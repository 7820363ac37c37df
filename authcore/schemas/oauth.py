from pydantic import BaseModel


class OAuthStateStats(BaseModel):
    active_states: int
    active_verifiers: int
    temp_data_count: int
