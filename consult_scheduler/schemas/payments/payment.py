from pydantic import BaseModel, Field


class PaymentConfirmation(BaseModel):
    challan_number: str = Field(min_length=1, max_length=50)
