"""
Loan Request Lifecycle Module

Applicant requests move Pending -> UnderReview -> Approved or Denied, and
may jump straight from Pending to either outcome. Approval consumes the
request into a new client and loan through one server-side procedure;
denial deletes the request and its uploaded ID images.
"""

from datetime import datetime, timezone
from typing import Any, List, Optional, Union
import uuid

from .amortization import calculate_loan_parameters
from .currency import to_decimal
from .documents import ContractData, DocumentGenerator, DocumentRenderError
from .logging_config import get_logger, log_action
from .models import (
    LoanRequest, LoanRequestForm, RequestStatus, RequestStatusLookup, AppMeta,
    Table, CONTRACT_TEMPLATE_KEY, parse_datetime
)
from .outcomes import Ok, InvalidInput, BackendFailure
from .storage import (
    BackendInterface, BackendError, failure_from, request_image_path, contract_path,
    RPC_APPROVE_REQUEST, RPC_GET_REQUEST_STATUS
)

logger = get_logger("lending.requests")


class LoanRequestManager:
    """
    Manages loan requests from submission to approval or denial
    """

    def __init__(self, backend: BackendInterface, documents: DocumentGenerator):
        self.backend = backend
        self.documents = documents
        self.annual_interest_rate = to_decimal(documents.config.default_annual_interest_rate)

    async def _cleanup_files(self, paths: List[str], operation: str) -> None:
        """Best-effort removal; failures are logged, never raised"""
        if not paths:
            return
        try:
            await self.backend.remove_files(paths)
        except BackendError as e:
            logger.warning(f"Cleanup after {operation} failed for {paths}: {e}")

    async def submit_request(
        self,
        form: LoanRequestForm,
        front_image: bytes,
        back_image: bytes,
        content_type: str = "image/jpeg"
    ) -> Union[Ok, InvalidInput, BackendFailure]:
        """
        Upload both ID images, then insert the request.

        The row is only inserted once both images are stored. If either
        upload or the insert fails, images already uploaded are removed.

        Returns:
            Ok(LoanRequest), InvalidInput or BackendFailure
        """
        if not form.full_name or not form.full_name.strip():
            return InvalidInput("full name is required", "full_name")
        if not form.id_number or not form.id_number.strip():
            return InvalidInput("ID number is required", "id_number")
        try:
            amount = to_decimal(form.loan_amount)
        except ValueError as e:
            return InvalidInput(str(e), "loan_amount")
        if amount <= 0:
            return InvalidInput("loan amount must be positive", "loan_amount")
        if not front_image or not back_image:
            return InvalidInput("both sides of the ID document are required", "id_images")

        request_id = str(uuid.uuid4())
        uploaded: List[str] = []
        try:
            for side, content in (("front", front_image), ("back", back_image)):
                path = await self.backend.upload(request_image_path(request_id, side), content, content_type)
                uploaded.append(path)

            request = LoanRequest(
                id=request_id,
                full_name=form.full_name.strip(),
                id_number=form.id_number.strip(),
                loan_amount=amount,
                request_date=datetime.now(timezone.utc),
                status=RequestStatus.PENDING,
                address=form.address,
                phone=form.phone,
                email=form.email,
                loan_reason=form.loan_reason,
                employment_status=form.employment_status,
                contract_type=form.contract_type,
                front_id_url=self.backend.public_url(uploaded[0]),
                back_id_url=self.backend.public_url(uploaded[1]),
                signature=form.signature
            )
            row = await self.backend.insert(Table.REQUESTS, request.to_row())
        except BackendError as e:
            await self._cleanup_files(uploaded, "submit_request")
            return failure_from("submit_request", e)

        log_action(logger, "info", "Loan request submitted", action="submit_request",
                   resource=f"request:{request_id}", extra={"amount": str(amount)})
        return Ok(LoanRequest.from_row(row))

    async def get_request(self, request_id: str) -> Union[Ok, BackendFailure]:
        try:
            row = await self.backend.get(Table.REQUESTS, request_id)
        except BackendError as e:
            return failure_from("get_request", e)
        if row is None:
            return BackendFailure("get_request", f"Request {request_id} not found", status_code=404)
        return Ok(LoanRequest.from_row(row))

    async def list_requests(self, status: Optional[RequestStatus] = None) -> Union[Ok, BackendFailure]:
        """Open requests, newest first"""
        filters = {"status": status.value} if status else None
        try:
            rows = await self.backend.select(Table.REQUESTS, filters)
        except BackendError as e:
            return failure_from("list_requests", e)
        requests = [LoanRequest.from_row(row) for row in rows]
        requests.sort(key=lambda r: r.request_date, reverse=True)
        return Ok(requests)

    async def update_status(self, request_id: str,
                            status: RequestStatus) -> Union[Ok, BackendFailure]:
        """Move a request between Pending and UnderReview"""
        try:
            row = await self.backend.update(Table.REQUESTS, request_id, {"status": status.value})
        except BackendError as e:
            return failure_from("update_request_status", e)
        log_action(logger, "info", f"Request moved to {status.value}", action="update_request_status",
                   resource=f"request:{request_id}")
        return Ok(LoanRequest.from_row(row))

    async def get_contract_template(self) -> Optional[str]:
        """Custom contract template, None when the default applies"""
        try:
            row = await self.backend.get(Table.APP_META, CONTRACT_TEMPLATE_KEY)
        except BackendError as e:
            logger.warning(f"Could not load contract template, using default: {e}")
            return None
        if row is None:
            return None
        return AppMeta.from_row(row).value or None

    async def set_contract_template(self, template: str) -> Union[Ok, BackendFailure]:
        try:
            await self.backend.upsert(Table.APP_META, AppMeta(CONTRACT_TEMPLATE_KEY, template).to_row())
        except BackendError as e:
            return failure_from("set_contract_template", e)
        return Ok(template)

    async def approve(
        self,
        request_id: str,
        term_months: Any,
        loan_amount: Any = None,
        signature: Optional[str] = None
    ) -> Union[Ok, InvalidInput, BackendFailure]:
        """
        Approve a request: render and store the signed contract, then create
        client and loan and consume the request in one backend procedure.

        Args:
            request_id: Request to approve
            term_months: Loan term, 0 for indefinite
            loan_amount: Approved principal (defaults to the requested amount)
            signature: Borrower signature image (data URL); defaults to the
                one captured with the request

        Returns:
            Ok({"client_id", "loan_id"}), InvalidInput or BackendFailure
        """
        loaded = await self.get_request(request_id)
        if not loaded:
            return loaded
        request = loaded.value

        amount = request.loan_amount if loan_amount is None else loan_amount
        checked = calculate_loan_parameters(amount, term_months, self.annual_interest_rate)
        if not checked:
            return checked
        params = checked.value
        signature = signature or request.signature

        template = await self.get_contract_template()
        contract = ContractData(request.full_name, request.id_number, request.address, params.principal)
        try:
            pdf = self.documents.contract_pdf(contract, signature, template)
        except DocumentRenderError as e:
            logger.error(f"Contract rendering failed for request {request_id}: {e}")
            return BackendFailure("render_contract", str(e))

        path = contract_path(request_id)
        try:
            await self.backend.upload(path, pdf, "application/pdf")
        except BackendError as e:
            return failure_from("upload_contract", e)

        try:
            result = await self.backend.rpc(RPC_APPROVE_REQUEST, {
                "request_id": request_id,
                "loan_amount": str(params.principal),
                "loan_term": params.term_months,
                "contract_pdf_url": self.backend.public_url(path),
                "signature": signature,
            })
        except BackendError as e:
            await self._cleanup_files([path], "approve_request")
            return failure_from("approve_request", e)

        log_action(logger, "info", "Loan request approved", action="approve_request",
                   resource=f"request:{request_id}",
                   extra={"amount": str(params.principal), "term": params.term_months})
        return Ok(result)

    async def deny(self, request_id: str) -> Union[Ok, BackendFailure]:
        """Delete a request and, best-effort, its ID images"""
        try:
            deleted = await self.backend.delete(Table.REQUESTS, request_id)
        except BackendError as e:
            return failure_from("deny_request", e)
        if not deleted:
            return BackendFailure("deny_request", f"Request {request_id} not found", status_code=404)

        await self._cleanup_files(
            [request_image_path(request_id, "front"), request_image_path(request_id, "back")],
            "deny_request"
        )
        log_action(logger, "info", "Loan request denied", action="deny_request",
                   resource=f"request:{request_id}")
        return Ok(request_id)

    async def check_status(self, id_number: str) -> Union[Ok, InvalidInput, BackendFailure]:
        """
        Public lookup of an applicant's latest request.

        Returns:
            Ok(RequestStatusLookup), Ok(None) when nothing is on file,
            InvalidInput or BackendFailure
        """
        if not id_number or not id_number.strip():
            return InvalidInput("ID number is required", "id_number")
        try:
            result = await self.backend.rpc(RPC_GET_REQUEST_STATUS, {"p_id_number": id_number.strip()})
        except BackendError as e:
            return failure_from("get_request_status", e)

        if isinstance(result, list):
            result = result[0] if result else None
        if not result:
            return Ok(None)
        return Ok(RequestStatusLookup(
            status=RequestStatus(result["status"]),
            request_date=parse_datetime(result["request_date"])
        ))
