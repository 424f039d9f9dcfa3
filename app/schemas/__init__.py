from app.schemas.auth import Token, UserResponse, LoginRequest, MemberRegister, SellerRegister, AdminRegister
from app.schemas.order import OrderCreate, OrderResponse, BuyerConfirmationRequest
from app.schemas.admin import VerificationReview, PendingVerificationResponse
