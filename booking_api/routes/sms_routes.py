from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, field_validator

from booking_api.dependencies import get_sms_gateway
from booking_api.notifications.sms import NotificationError, SmsGateway, render_template

router = APIRouter(tags=['sms'])

MAX_BATCH_RECIPIENTS = 100


class SendSmsRequest(BaseModel):
    to: str
    message: str | None = None
    template: str | None = None
    values: dict[str, str] = Field(default_factory=dict)

    @field_validator('to')
    @classmethod
    def validate_recipient(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Recipient phone number is required.')
        return normalized


class SendBatchSmsRequest(BaseModel):
    recipients: list[str] = Field(min_length=1, max_length=MAX_BATCH_RECIPIENTS)
    message: str = Field(min_length=1)

    @field_validator('recipients')
    @classmethod
    def validate_recipients(cls, value: list[str]) -> list[str]:
        normalized = [recipient.strip() for recipient in value if recipient.strip()]
        if not normalized:
            raise ValueError('At least one recipient is required.')
        return normalized


class SmsResponse(BaseModel):
    success: bool
    sid: str


class BatchSmsResponse(BaseModel):
    success: bool
    sids: list[str]


def build_message(data: SendSmsRequest) -> str:
    if bool(data.message) == bool(data.template):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Provide either a message or a template.',
        )

    if data.message:
        return data.message

    try:
        return render_template(data.template, **data.values)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.post('/send', response_model=SmsResponse)
def send_sms(data: SendSmsRequest, sms_gateway: SmsGateway = Depends(get_sms_gateway)):
    message = build_message(data)

    try:
        sid = sms_gateway.send_sms(data.to, message)
    except NotificationError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return SmsResponse(success=True, sid=sid)


@router.post('/batch', response_model=BatchSmsResponse)
def send_batch_sms(data: SendBatchSmsRequest, sms_gateway: SmsGateway = Depends(get_sms_gateway)):
    try:
        sids = sms_gateway.send_batch_sms(data.recipients, data.message)
    except NotificationError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return BatchSmsResponse(success=True, sids=sids)
