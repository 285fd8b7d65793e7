# __init__.py
from app.schemas.registration import (
	BackRequest,
	FlowResponse,
	FlowState,
	PhotoUploadResponse,
	ProfileRead,
	Step1Form,
	Step2Form,
	SubmitRequest,
)
from app.schemas.user import Token, TokenData, UserCreate, UserLogin, UserRead

__all__ = [
	"BackRequest",
	"FlowResponse",
	"FlowState",
	"PhotoUploadResponse",
	"ProfileRead",
	"Step1Form",
	"Step2Form",
	"SubmitRequest",
	"Token",
	"TokenData",
	"UserCreate",
	"UserLogin",
	"UserRead",
]
