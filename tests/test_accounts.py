"""
Tests for account requests and the approval workflow
"""
import pytest
from sqlalchemy.exc import SQLAlchemyError

from reserve_api.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    InvalidStateError,
    ResourceConflictError,
    ResourceNotFoundError,
    ValidationError,
)
from reserve_api.core.permissions import Role
from reserve_api.models.account_request import AccountRequest, AccountStatus
from reserve_api.models.audit_log import AuditLog, AuditAction
from reserve_api.models.personnel import Personnel
from reserve_api.models.user import User
from reserve_api.services.account_service import AccountService, account_service
from reserve_api.services.audit_service import AuditService
from reserve_api.services.cache_service import PERSONNEL_STATS_KEY
from reserve_api.tasks import celery_app


def audit_entries(db, action):
    return db.query(AuditLog).filter(AuditLog.action == action).all()


class TestSubmission:
    """Test self-registration"""

    def test_register_creates_pending_request(self, client, db):
        response = client.post('/api/auth/register', json={
            'firstName': 'Sarah',
            'lastName': 'Johnson',
            'email': 'Sarah.Johnson@army.mil.ph',
            'password': 'a-long-password',
            'rank': 'Corporal',
            'company': 'Bravo',
        })
        assert response.status_code == 201
        account = response.json()['account']
        assert account['status'] == 'pending'
        assert account['email'] == 'sarah.johnson@army.mil.ph'
        assert account['submittedAt']

        [entry] = audit_entries(db, AuditAction.register)
        assert entry.user_name == 'anonymous'
        assert entry.resource_id == str(account['id'])

    def test_duplicate_pending_email_conflicts(self, db, pending_request):
        with pytest.raises(ResourceConflictError):
            account_service.submit(db, 'John', 'Smith', pending_request.email.upper(), 'Private')

    def test_rejected_email_may_reapply(self, db, request_factory):
        request_factory(status=AccountStatus.rejected, rejection_reason='Incomplete')
        account = account_service.submit(db, 'John', 'Smith', 'john.smith@army.mil.ph', 'Private')
        assert account.status == AccountStatus.pending

    def test_register_rejects_malformed_body(self, client):
        response = client.post('/api/auth/register', json={'firstName': 'A', 'email': 'nope'})
        assert response.status_code == 422
        assert response.json()['error'] == 'ValidationError'


class TestListing:
    """Test GET /api/accounts"""

    def test_newest_first(self, client, staff, request_factory, auth_headers):
        first = request_factory(first_name='John', last_name='Smith')
        second = request_factory(first_name='Lisa', last_name='Wilson')
        response = client.get('/api/accounts', headers=auth_headers(staff))
        assert response.status_code == 200
        ids = [a['id'] for a in response.json()['accounts']]
        assert ids == [second.id, first.id]

    def test_status_filter(self, client, staff, request_factory, auth_headers):
        request_factory(first_name='John', last_name='Smith')
        request_factory(first_name='Lisa', last_name='Wilson', status=AccountStatus.approved)
        response = client.get('/api/accounts', params={'status': 'approved'}, headers=auth_headers(staff))
        assert [a['name'] for a in response.json()['accounts']] == ['Lisa Wilson']

    def test_unknown_status_filter(self, client, staff, auth_headers):
        response = client.get('/api/accounts', params={'status': 'archived'}, headers=auth_headers(staff))
        assert response.status_code == 400

    def test_reservist_cannot_list(self, client, reservist, auth_headers):
        response = client.get('/api/accounts', headers=auth_headers(reservist))
        assert response.status_code == 403


class TestApprovalService:
    """Test the approve/reject state machine directly"""

    def test_approve_creates_personnel(self, db, staff, pending_request):
        account = account_service.approve(db, pending_request.id, staff)
        assert account.status == AccountStatus.approved
        assert account.decided_by_id == staff.id
        assert account.decided_at is not None

        personnel = db.query(Personnel).filter(Personnel.account_request_id == account.id).one()
        assert personnel.status == 'standby'
        assert personnel.name == 'John Smith'
        assert personnel.user_id is None

    def test_approve_reactivates_existing_personnel(self, db, staff, pending_request):
        existing = Personnel(name='John Smith', rank='Private', email=pending_request.email, status='retired')
        db.add(existing)
        db.commit()

        account_service.approve(db, pending_request.id, staff)
        db.refresh(existing)
        assert existing.status == 'standby'
        assert existing.account_request_id == pending_request.id
        assert db.query(Personnel).count() == 1

    def test_approve_self_registration_activates_login(self, db, staff, request_factory):
        pending = request_factory(password='a-long-password')
        account_service.approve(db, pending.id, staff)
        user = db.query(User).filter(User.email == pending.email).one()
        assert user.role == Role.reservist
        assert user.is_active
        personnel = db.query(Personnel).filter(Personnel.email == pending.email).one()
        assert personnel.user_id == user.id

    def test_double_approve_is_invalid_state(self, db, staff, pending_request):
        account_service.approve(db, pending_request.id, staff)
        with pytest.raises(InvalidStateError):
            account_service.approve(db, pending_request.id, staff)
        assert db.query(Personnel).count() == 1

    def test_reject_after_approve_is_invalid_state(self, db, staff, pending_request):
        account_service.approve(db, pending_request.id, staff)
        with pytest.raises(InvalidStateError):
            account_service.reject(db, pending_request.id, staff, 'Too late')

    @pytest.mark.parametrize('reason', [None, '', '   \n\t'])
    def test_reject_requires_reason(self, db, staff, pending_request, reason):
        with pytest.raises(ValidationError):
            account_service.reject(db, pending_request.id, staff, reason)
        db.refresh(pending_request)
        assert pending_request.status == AccountStatus.pending

    def test_reject_stores_trimmed_reason(self, db, staff, pending_request):
        account = account_service.reject(db, pending_request.id, staff, '  Unverified service number  ')
        assert account.status == AccountStatus.rejected
        assert account.rejection_reason == 'Unverified service number'
        assert db.query(Personnel).count() == 0

    def test_missing_request(self, db, staff):
        with pytest.raises(ResourceNotFoundError):
            account_service.approve(db, 9999, staff)

    def test_reservist_cannot_approve(self, db, reservist, pending_request):
        with pytest.raises(AuthorizationError):
            account_service.approve(db, pending_request.id, reservist)
        db.refresh(pending_request)
        assert pending_request.status == AccountStatus.pending

    def test_anonymous_cannot_approve(self, db, pending_request):
        with pytest.raises(AuthenticationError):
            account_service.approve(db, pending_request.id, None)

    def test_lost_race_is_conflict(self, db, staff, pending_request, monkeypatch):
        """The loser of two concurrent approvals sees zero affected rows."""
        account_service.approve(db, pending_request.id, staff)
        # Pretend this approver read the row before the winner committed.
        monkeypatch.setattr(AccountService, '_pending', staticmethod(lambda db, request_id: None))

        with pytest.raises(ResourceConflictError, match='already processed'):
            account_service.reject(db, pending_request.id, staff, 'Duplicate')
        refreshed = db.get(AccountRequest, pending_request.id, populate_existing=True)
        assert refreshed.status == AccountStatus.approved

    def test_decide_rejects_unknown_status(self, db, staff, pending_request):
        with pytest.raises(ValidationError):
            account_service.decide(db, pending_request.id, staff, 'pending')


class TestApprovalEndpoint:
    """Test PATCH /api/accounts"""

    def test_approve_writes_one_audit_entry(self, client, db, staff, pending_request, auth_headers):
        response = client.patch('/api/accounts', headers=auth_headers(staff), json={
            'id': pending_request.id, 'status': 'approved',
        })
        assert response.status_code == 200
        body = response.json()
        assert body['success'] is True
        assert body['account']['status'] == 'approved'

        [entry] = audit_entries(db, AuditAction.approve)
        assert entry.resource.value == 'account_request'
        assert entry.resource_id == str(pending_request.id)
        assert entry.user_id == staff.id
        assert entry.user_role == 'staff'

    def test_reject_with_blank_reason(self, client, db, staff, pending_request, auth_headers):
        response = client.patch('/api/accounts', headers=auth_headers(staff), json={
            'id': pending_request.id, 'status': 'rejected', 'rejectionReason': '  ',
        })
        assert response.status_code == 400
        assert response.json()['error'] == 'ValidationError'
        assert audit_entries(db, AuditAction.reject) == []

    def test_second_decision_is_409(self, client, staff, pending_request, auth_headers):
        headers = auth_headers(staff)
        payload = {'id': pending_request.id, 'status': 'approved'}
        assert client.patch('/api/accounts', headers=headers, json=payload).status_code == 200
        response = client.patch('/api/accounts', headers=headers, json=payload)
        assert response.status_code == 409
        assert response.json()['error'] == 'InvalidState'

    def test_missing_request_is_404(self, client, staff, auth_headers):
        response = client.patch('/api/accounts', headers=auth_headers(staff), json={'id': 404, 'status': 'approved'})
        assert response.status_code == 404
        assert response.json()['error'] == 'NotFound'

    def test_audit_failure_keeps_approval(self, client, db, staff, pending_request, auth_headers, monkeypatch, caplog):
        def broken_persist(db, entry):
            raise SQLAlchemyError('audit table unavailable')

        monkeypatch.setattr(AuditService, '_persist', staticmethod(broken_persist))
        with caplog.at_level('ERROR', logger='reserve_api.audit'):
            response = client.patch('/api/accounts', headers=auth_headers(staff), json={
                'id': pending_request.id, 'status': 'approved',
            })

        assert response.status_code == 200
        refreshed = db.get(AccountRequest, pending_request.id, populate_existing=True)
        assert refreshed.status == AccountStatus.approved
        assert db.query(Personnel).count() == 1
        assert db.query(AuditLog).count() == 0
        assert 'Failed to write audit entry' in caplog.text

    def test_approval_invalidates_stats_cache(self, client, staff, pending_request, auth_headers, fake_redis):
        headers = auth_headers(staff)
        before = client.get('/api/personnel/stats', headers=headers).json()
        assert before['total'] == 0
        assert PERSONNEL_STATS_KEY in fake_redis.store

        client.patch('/api/accounts', headers=headers, json={'id': pending_request.id, 'status': 'approved'})
        assert PERSONNEL_STATS_KEY not in fake_redis.store

        after = client.get('/api/personnel/stats', headers=headers).json()
        assert after['total'] == 1
        assert after['byStatus']['standby'] == 1

    def test_decision_notifies_applicant(self, client, staff, pending_request, auth_headers, monkeypatch):
        sent = []
        monkeypatch.setattr('reserve_api.api.accounts.enqueue_account_decision', lambda *args: sent.append(args))

        client.patch('/api/accounts', headers=auth_headers(staff), json={
            'id': pending_request.id, 'status': 'rejected', 'rejectionReason': 'Not in roster',
        })
        assert sent == [(pending_request.email, 'John Smith', 'rejected', 'Not in roster')]


class TestNotificationTask:
    """Test the applicant notice task"""

    def test_skips_without_smtp(self):
        result = celery_app.notify_account_decision.apply(
            args=('john.smith@army.mil.ph', 'John Smith', 'approved'),
        ).get()
        assert result == {'sent': False, 'reason': 'smtp_not_configured'}

    def test_rejection_message_carries_reason(self):
        message = celery_app._decision_message('John Smith', 'rejected', 'Not in roster')
        assert 'rejected' in message
        assert 'Reason: Not in roster' in message

    def test_sends_through_smtp(self, monkeypatch):
        sent = []

        async def fake_send(message, **options):
            sent.append((message, options))

        monkeypatch.setattr(celery_app.settings, 'SMTP_HOST', 'smtp.army.mil.ph')
        monkeypatch.setattr(celery_app.aiosmtplib, 'send', fake_send)

        result = celery_app.notify_account_decision.apply(
            args=('john.smith@army.mil.ph', 'John Smith', 'approved'),
        ).get()

        assert result == {'sent': True}
        [(message, options)] = sent
        assert message['To'] == 'john.smith@army.mil.ph'
        assert message['Subject'] == 'Account request approved'
        assert options['hostname'] == 'smtp.army.mil.ph'
        assert options['start_tls'] is True
