"""
Streamlit Frontend for AI Bookkeeper

The page a small-business owner uses to turn a bank statement photo into
ledger entries.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Explicit confirmation before anything is saved
3. Clear error messages in simple language
4. Sample data is always labelled as sample data

The UI enforces the human-in-the-loop principle:
- User sees every extracted transaction
- User edits, adds or removes rows
- Nothing is saved without an explicit "Save" action

Components are built per browser session (each session has its own
Supabase client and review buffer); nothing is shared between users.
"""

import asyncio
from uuid import NAMESPACE_URL, uuid5

import streamlit as st

from bookkeeper.audit import create_correlation_id
from bookkeeper.config import validate_all_settings
from bookkeeper.errors import BookkeeperError
from bookkeeper.models.session import AuthUser, SessionContext, UserType
from bookkeeper.models.statement import LedgerCategory
from bookkeeper.orchestrator import (
    StatementUploadFlow,
    create_app_components,
    create_offline_profile_service,
)
from bookkeeper.review import ReviewBuffer
from bookkeeper.services.auth import SessionManager


# Page configuration
st.set_page_config(
    page_title="AI Bookkeeper",
    page_icon="📒",
    layout="wide",
    initial_sidebar_state="expanded",
)

OFFLINE_USER_ID = uuid5(NAMESPACE_URL, "bookkeeper://offline-demo")
CATEGORIES = list(LedgerCategory)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def get_components():
    """Get or create this browser session's components."""
    if "components" not in st.session_state:
        st.session_state.components = create_app_components(use_storage=True)
    return st.session_state.components


def get_session(session_manager) -> SessionContext:
    """The session context; an offline demo user when Supabase is not configured."""
    if "session" not in st.session_state:
        if session_manager is None:
            user = AuthUser(id=OFFLINE_USER_ID, email="demo@localhost", metadata={"full_name": "Demo"})
            context = SessionContext(user=user)
            context.profile = run_async(create_offline_profile_service().ensure_profile(user))
            st.session_state.session = context
        else:
            st.session_state.session = SessionContext()
    return st.session_state.session


def reset_upload():
    for key in ("buffer", "validation", "val_message", "file_path", "correlation_id"):
        st.session_state.pop(key, None)
    st.session_state.upload_state = "idle"


def main():
    """Main application entry point."""
    flow, session_manager, _ = get_components()
    session = get_session(session_manager)

    st.sidebar.title("📒 AI Bookkeeper")
    st.sidebar.markdown("---")

    if not session.is_active:
        render_sign_in_page(session_manager)
        return

    page = st.sidebar.radio(
        "Navigate to:",
        ["📤 Upload Statement", "📊 Processed Statements", "⚙️ Settings"],
        index=0,
    )

    st.sidebar.markdown("---")
    name = session.profile.full_name if session.profile else session.user.email
    st.sidebar.markdown(f"Signed in as **{name}**")
    if session_manager is None:
        st.sidebar.info("Offline demo mode: statements are kept in memory only.")
    elif st.sidebar.button("Sign out"):
        try:
            run_async(session_manager.sign_out(session))
        except BookkeeperError as e:
            st.sidebar.warning(e.user_message)
        reset_upload()
        st.rerun()

    if page == "📤 Upload Statement":
        render_upload_page(flow, session)
    elif page == "📊 Processed Statements":
        render_statements_page(flow, session)
    elif page == "⚙️ Settings":
        render_settings_page()


def render_sign_in_page(session_manager: SessionManager):
    """Sign in or create an account."""
    st.title("Sign in")
    sign_in_tab, register_tab = st.tabs(["Sign in", "Create account"])

    with sign_in_tab:
        with st.form("sign_in"):
            email = st.text_input("Email")
            password = st.text_input("Password", type="password")
            submitted = st.form_submit_button("Sign in", type="primary")
        if submitted:
            try:
                st.session_state.session = run_async(session_manager.sign_in(email, password))
                st.rerun()
            except BookkeeperError as e:
                st.error(e.user_message)

    with register_tab:
        with st.form("register"):
            full_name = st.text_input("Full name")
            email = st.text_input("Email", key="register_email")
            password = st.text_input("Password", type="password", key="register_password")
            user_type = st.selectbox(
                "Account type",
                options=list(UserType),
                format_func=lambda x: x.value.title(),
            )
            company_name = st.text_input("Company name (organizations)")
            gst_number = st.text_input("GST number (optional)")
            submitted = st.form_submit_button("Create account")
        if submitted:
            try:
                context = run_async(session_manager.register(
                    email,
                    password,
                    full_name=full_name or None,
                    user_type=user_type,
                    company_name=company_name or None,
                    gst_number=gst_number or None,
                ))
            except BookkeeperError as e:
                st.error(e.user_message)
            else:
                if context is None:
                    st.info("Check your email to confirm your account, then sign in.")
                else:
                    st.session_state.session = context
                    st.rerun()


def render_upload_page(flow: StatementUploadFlow, session: SessionContext):
    """Render the statement upload page."""
    st.title("📤 Upload Bank Statement")
    st.markdown("Upload a photo or PDF of your bank statement.")

    if "upload_state" not in st.session_state:
        st.session_state.upload_state = "idle"  # idle, reviewing, saved

    if st.session_state.upload_state == "idle":
        uploaded_file = st.file_uploader(
            "Choose a statement",
            type=["jpg", "jpeg", "png", "pdf"],
            help="Max 10 MB. JPEG, PNG or PDF.",
        )
        col1, col2 = st.columns(2)
        with col1:
            process = st.button("🔍 Extract Transactions", type="primary", disabled=uploaded_file is None)
        with col2:
            sample = st.button("🧪 Try with sample data")

        if process and uploaded_file is not None:
            process_upload(flow, session, uploaded_file)
        elif sample:
            process_upload(flow, session, None)

    if st.session_state.upload_state == "reviewing":
        render_review(flow, session)

    if st.session_state.upload_state == "saved":
        result = st.session_state.saved_result
        st.success(st.session_state.saved_message)
        st.markdown(f"**File:** {result.statement.file_name}")
        if st.button("📤 Upload Another Statement"):
            reset_upload()
            st.rerun()


def process_upload(flow: StatementUploadFlow, session: SessionContext, uploaded_file):
    correlation_id = create_correlation_id()
    st.session_state.correlation_id = correlation_id
    file_path = None
    document = None

    with st.spinner("Reading your statement... Please wait."):
        if uploaded_file is not None:
            data = uploaded_file.read()
            document, ok, message = run_async(flow.receive_document(
                uploaded_file.name, data, uploaded_file.type, correlation_id,
            ))
            if not ok:
                st.error(message)
                return
            file_path, ok, message = run_async(flow.archive_document(
                session, document, data, correlation_id,
            ))
            if not ok:
                st.error(message)
                return

        statement, ok, message = run_async(flow.extract(document, correlation_id))
        if not ok:
            st.error(message)
            return

        buffer, validation, val_message = run_async(flow.start_review(statement, correlation_id))

    st.session_state.buffer = buffer
    st.session_state.validation = validation
    st.session_state.val_message = val_message
    st.session_state.file_path = file_path
    st.session_state.upload_state = "reviewing"
    st.rerun()


def render_review(flow: StatementUploadFlow, session: SessionContext):
    """Review and edit the extracted statement."""
    buffer: ReviewBuffer = st.session_state.buffer
    statement = buffer.snapshot

    st.markdown("---")
    st.subheader("📋 Review Extracted Transactions")
    if statement.is_sample:
        st.warning("This is SAMPLE data, not read from your statement.")
    if st.session_state.validation.is_clean:
        st.success(st.session_state.val_message)
    else:
        st.info(st.session_state.val_message)

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        account = st.text_input("Account number", value=statement.account_number)
    with col2:
        bank = st.text_input("Bank", value=statement.bank_name)
    with col3:
        period_from = st.date_input("From", value=statement.statement_period.from_date)
    with col4:
        period_to = st.date_input("To", value=statement.statement_period.to_date)
    col1, col2 = st.columns(2)
    with col1:
        opening = st.text_input("Opening balance", value=statement.opening_balance)
    with col2:
        closing = st.text_input("Closing balance", value=statement.closing_balance)

    if st.button("Apply header changes"):
        buffer.set_field("account_number", account)
        buffer.set_field("bank_name", bank)
        buffer.set_field("opening_balance", opening)
        buffer.set_field("closing_balance", closing)
        buffer.set_period_bound("from", period_from)
        buffer.set_period_bound("to", period_to)
        refresh_checks(flow)
        st.rerun()

    for i, t in enumerate(statement.transactions):
        label = f"{t.date} · {t.description or '(no description)'} · "
        label += f"-{t.debit_amount:,.2f}" if t.is_debit else f"+{t.credit_amount:,.2f}"
        with st.expander(label):
            with st.form(f"row_{statement.extraction_id}_{i}"):
                c1, c2, c3 = st.columns(3)
                with c1:
                    row_date = st.date_input("Date", value=t.date)
                    description = st.text_input("Description", value=t.description)
                with c2:
                    debit = st.text_input("Debit", value=str(t.debit_amount))
                    credit = st.text_input("Credit", value=str(t.credit_amount))
                with c3:
                    balance = st.text_input("Balance", value=str(t.balance))
                    reference = st.text_input("Reference", value=t.reference_number)
                category = st.selectbox(
                    "Category",
                    options=CATEGORIES,
                    index=CATEGORIES.index(t.category),
                    format_func=lambda c: c.label,
                )
                save_row = st.form_submit_button("Apply")
                remove_row = st.form_submit_button("Remove row")
            if save_row:
                for field, value in (
                    ("date", row_date),
                    ("description", description),
                    ("debit_amount", debit),
                    ("credit_amount", credit),
                    ("balance", balance),
                    ("reference_number", reference),
                    ("category", category),
                ):
                    buffer.set_transaction_field(i, field, value)
                refresh_checks(flow)
                st.rerun()
            if remove_row:
                buffer.remove_transaction(i)
                refresh_checks(flow)
                st.rerun()

    if st.button("➕ Add transaction"):
        buffer.add_transaction()
        refresh_checks(flow)
        st.rerun()

    summary = buffer.summary()
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Transactions", summary["transaction_count"])
    c2.metric("Total debits", f"{summary['total_debits']:,.2f}")
    c3.metric("Total credits", f"{summary['total_credits']:,.2f}")
    c4.metric("Net change", f"{summary['net_change']:,.2f}")

    st.markdown("---")
    col1, col2 = st.columns(2)
    with col1:
        if st.button("✅ Confirm and Save", type="primary"):
            with st.spinner("Saving..."):
                result, ok, message = run_async(flow.confirm_and_save(
                    session,
                    buffer.snapshot,
                    file_path=st.session_state.file_path,
                    correlation_id=st.session_state.correlation_id,
                ))
            if ok:
                st.session_state.saved_result = result
                st.session_state.saved_message = message
                st.session_state.upload_state = "saved"
                st.rerun()
            else:
                st.error(message)
    with col2:
        if st.button("❌ Discard / Start Over"):
            run_async(flow.reject_extraction(
                buffer.snapshot,
                reason="User discarded",
                correlation_id=st.session_state.correlation_id,
            ))
            reset_upload()
            st.rerun()


def refresh_checks(flow: StatementUploadFlow):
    validation, message = run_async(flow.validate(
        st.session_state.buffer.snapshot,
        st.session_state.correlation_id,
    ))
    st.session_state.validation = validation
    st.session_state.val_message = message


def render_statements_page(flow: StatementUploadFlow, session: SessionContext):
    """Render the processed statements list."""
    st.title("📊 Processed Statements")
    try:
        statements = run_async(flow.list_statements(session))
    except BookkeeperError as e:
        st.error(e.user_message)
        return

    if not statements:
        st.info(
            "📋 Your statements will appear here once you save them. "
            "Use the 'Upload Statement' page to add your first one."
        )
        return

    for header in statements:
        st.markdown(
            f"**{header.file_name}**  \n"
            f"Uploaded {header.upload_date:%d %B %Y %H:%M} · "
            f"{'Processed' if header.processed else 'Pending'}"
        )


def render_settings_page():
    """Render the settings page."""
    st.title("⚙️ Settings")
    st.markdown("### Connection Status")

    status = validate_all_settings()
    services = [
        ("Gemini (Statement extraction)", "gemini"),
        ("Supabase (Storage and sign-in)", "supabase"),
        ("Application settings", "app"),
    ]
    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file with your API keys. "
        "See `.env.example` for the required variables."
    )


if __name__ == "__main__":
    main()
