# invoicer.py: G Te Goyna invoice generator
# Streamlit front end: PIN gate -> invoice details -> preview & PNG export, with a saved-invoices panel

import logging
from datetime import date

import streamlit as st
import streamlit.components.v1 as components

from goyna.access_gate import LOCKED_MESSAGE, load_state, save_state, verify_later
from goyna.archive import ArchiveStore
from goyna.builder import InvoiceBuilder, compute_totals
from goyna.config import ApplicationConfig
from goyna.export import (
    ExportError,
    build_pdf_bytes,
    export_filename,
    export_image,
    format_display_date,
    read_invoice_from_pdf,
    render_preview_html,
)
from goyna.models import DiscountType
from goyna.storage import LocalStorage, StorageError
from goyna.utils import format_money, now_ms

logging.basicConfig(
    level=getattr(logging, str(ApplicationConfig.LOG_LEVEL).upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("invoicer")

DISCOUNT_LABELS = {
    DiscountType.NONE: "No Discount",
    DiscountType.PERCENTAGE: "Percentage (%)",
    DiscountType.FIXED: "Fixed Amount",
}

# ---- Persistence (one local store per server process) ----

@st.cache_resource
def get_storage() -> LocalStorage:
    return LocalStorage()

def get_archive() -> ArchiveStore:
    return ArchiveStore(get_storage())

def ensure_session():
    if "current_step" not in st.session_state:
        st.session_state.current_step = 1
    if "form_nonce" not in st.session_state:
        st.session_state.form_nonce = 0
    if "builder" not in st.session_state:
        archive = get_archive()
        loaded = archive.read()
        if loaded.error:
            st.session_state.archive_warning = loaded.error
        st.session_state.builder = InvoiceBuilder(archive)

def set_step(n: int):
    st.session_state.current_step = n

def refresh_form():
    # New widget keys so inputs pick up the builder's record instead of stale widget state
    st.session_state.form_nonce += 1

def wkey(name: str) -> str:
    return f"{name}_{st.session_state.form_nonce}"

# ---- Access ----

def pin_login():
    storage = get_storage()
    state = load_state(storage)
    locked = state.is_locked(now_ms())

    st.header("Invoice Generator")
    st.caption("Enter PIN to access")

    with st.form("pin_form", clear_on_submit=True):
        pin = st.text_input("PIN Code", type="password", max_chars=10, placeholder="Enter PIN", disabled=locked)
        submitted = st.form_submit_button("Unlock Access", disabled=locked, use_container_width=True)

    if submitted and pin:
        with st.spinner("Verifying..."):
            result, state = verify_later(pin, state).result()
        try:
            save_state(storage, state)
        except StorageError:
            st.error("Could not record the attempt. Please try again.")
            return
        if result.success:
            st.session_state[ApplicationConfig.session_auth_key()] = True
            logger.info("Access granted")
            st.rerun()
        elif result.locked:
            st.error("Account locked. Too many failed attempts. Please try again later.")
        else:
            st.error(result.message)
        locked = result.locked

    if locked:
        st.warning(LOCKED_MESSAGE)

    st.caption(f"{ApplicationConfig.BRAND_NAME} © {date.today().year} | All Rights Reserved")

# ---- Saved invoices ----

def saved_invoices_panel():
    builder: InvoiceBuilder = st.session_state.builder
    archive = builder.archive

    with st.expander("Saved Invoices", expanded=False):
        st.caption("View and manage your previously saved invoices.")
        loaded = archive.read()
        if loaded.error:
            st.warning(f"Error loading invoices: {loaded.error}")

        if not loaded.records:
            st.info("No saved invoices found.")
        for idx_, inv in enumerate(loaded.records):
            cA, cB, cC = st.columns([4, 1, 1])
            total = compute_totals(inv).total
            cA.markdown(
                f"**{inv.invoice_number}**  \n{inv.customer_name}  \n"
                f"{format_display_date(inv.date)} - {format_money(total)}"
            )
            if cB.button("Load", key=f"load_{idx_}"):
                builder.load(inv)
                refresh_form(); set_step(1)
                st.session_state.flash = ("success", f"Invoice {inv.invoice_number} has been loaded.")
                st.rerun()
            if cC.button("Delete", key=f"del_{idx_}"):
                try:
                    archive.remove(inv.invoice_number)
                    st.session_state.flash = ("success", f"Invoice {inv.invoice_number} has been deleted.")
                except StorageError:
                    st.session_state.flash = ("error", "There was a problem deleting the invoice. Please try again.")
                st.rerun()

        if st.button("Clear All", disabled=not loaded.records):
            try:
                archive.clear()
                st.session_state.flash = ("success", "All saved invoices have been deleted.")
            except StorageError:
                st.session_state.flash = ("error", "Failed to delete invoices.")
            st.rerun()

        st.divider()
        uploaded = st.file_uploader("Load from an exported invoice PDF", type=["pdf"], key="prepop_pdf")
        if uploaded is not None and st.button("Load PDF"):
            try:
                record = read_invoice_from_pdf(uploaded.read())
            except ExportError as e:
                st.error(f"Failed to load invoice from PDF: {e}")
            else:
                builder.load(record)
                refresh_form(); set_step(1)
                st.session_state.flash = ("success", f"Invoice {record.invoice_number} has been loaded.")
                st.rerun()

# ---- Steps ----

def _discount_value_changed(key: str):
    builder: InvoiceBuilder = st.session_state.builder
    st.session_state[key] = float(builder.set_discount_value(st.session_state[key]))

def step1():
    builder: InvoiceBuilder = st.session_state.builder
    inv = builder.record

    st.subheader("Invoice Details")
    c1, c2 = st.columns(2)
    c1.text_input("Invoice Number", inv.invoice_number, disabled=True, help="Auto-generated", key=wkey("inv_no"))
    try:
        current_date = date.fromisoformat(inv.date)
    except ValueError:
        current_date = date.today()
    inv.date = c2.date_input("Date", current_date, format="DD/MM/YYYY", key=wkey("date")).isoformat()

    st.subheader("Customer Information")
    inv.customer_name = st.text_input("Customer Name *", inv.customer_name, placeholder="Customer name", key=wkey("cust_name"))
    inv.customer_address = st.text_area("Address", inv.customer_address, placeholder="Customer address", height=80, key=wkey("cust_addr"))
    inv.customer_phone = st.text_input("Phone", inv.customer_phone, placeholder="Customer phone", key=wkey("cust_phone"))

    st.subheader("Items *")
    for it in list(inv.items):
        cA, cB, cC, cD = st.columns([6, 2, 3, 1])
        desc = cA.text_input("Description *", it.description, placeholder="Item description", key=wkey(f"desc_{it.id}"))
        qty = cB.number_input("Qty *", min_value=0, value=int(it.quantity), step=1, key=wkey(f"qty_{it.id}"))
        price = cC.number_input("Price *", min_value=0.0, value=float(it.price), step=0.01, format="%.2f", key=wkey(f"price_{it.id}"))
        builder.update_item(it.id, description=desc, quantity=qty, price=price)
        cD.markdown("<div style='height: 1.75rem'></div>", unsafe_allow_html=True)
        if cD.button("🗑", key=wkey(f"rm_{it.id}"), disabled=len(inv.items) == 1):
            builder.remove_item(it.id)
            st.rerun()

    if st.button("Add Item", use_container_width=True):
        builder.add_item()
        st.rerun()

    st.subheader("Discount")
    options = list(DiscountType)
    choice = st.radio("Discount", options, index=options.index(inv.discount_type),
                      format_func=lambda t: DISCOUNT_LABELS[t], key=wkey("disc_type"), label_visibility="collapsed")
    if choice != inv.discount_type:
        builder.set_discount_type(choice)
        refresh_form()
        st.rerun()
    if inv.discount_type != DiscountType.NONE:
        key = wkey("disc_value")
        if key not in st.session_state:
            st.session_state[key] = float(inv.discount_value)
        label = "Discount Percentage" if inv.discount_type == DiscountType.PERCENTAGE else "Discount Amount"
        st.number_input(label, min_value=0.0,
                        step=1.0 if inv.discount_type == DiscountType.PERCENTAGE else 0.01,
                        key=key, on_change=_discount_value_changed, args=(key,))
        builder.set_discount_value(st.session_state[key])

    inv.notes = st.text_area("Notes", inv.notes, placeholder="Additional notes or payment instructions", height=100, key=wkey("notes"))

    # Order summary
    subtotal, discount_amount, total = builder.totals()
    with st.container(border=True):
        st.markdown("**Order Summary**")
        s1, s2 = st.columns([3, 1])
        s1.write("Subtotal"); s2.write(format_money(subtotal))
        if inv.discount_type != DiscountType.NONE:
            pct = f" ({inv.discount_value.normalize():f}%)" if inv.discount_type == DiscountType.PERCENTAGE else ""
            s1.write(f":red[Discount{pct}]"); s2.write(f":red[- {format_money(discount_amount)}]")
        s1.markdown("**Total**"); s2.markdown(f"**{format_money(total)}**")

        if st.button("Preview Invoice →", type="primary", use_container_width=True, disabled=not builder.is_valid()):
            set_step(2)
            st.rerun()

def step2():
    builder: InvoiceBuilder = st.session_state.builder
    inv = builder.record
    totals = builder.totals()

    st.subheader("Invoice Preview")
    html_doc = render_preview_html(inv, totals)
    components.html(f"""<!doctype html><html><head><meta charset="utf-8"><title>Invoice</title></head>
    <body style="margin:0;">{html_doc}</body></html>""", height=1000, scrolling=True)

    c1, c2, c3 = st.columns(3)
    if c1.button("Edit Invoice", use_container_width=True):
        refresh_form(); set_step(1); st.rerun()

    if c2.button("Download Image", type="primary", use_container_width=True):
        with st.spinner("Generating image..."):
            try:
                png = export_image(inv).result()
            except ExportError as e:
                st.error(f"Download failed. {e}")
                return
        filename = export_filename(inv)
        st.session_state.last_export = (filename, png)
        try:
            saved = builder.save()
        except StorageError:
            st.session_state.flash = ("error", "The image is ready to download, but the invoice was not saved. Please try again.")
            st.rerun()
        st.session_state.flash = ("success", f"Invoice {saved.invoice_number} has been saved successfully.")
        refresh_form(); set_step(1)
        st.rerun()

    try:
        pdf_bytes = build_pdf_bytes(inv, totals)
    except ExportError as e:
        c3.error(str(e))
    else:
        c3.download_button("Download PDF", data=pdf_bytes, file_name=export_filename(inv, "pdf"),
                           mime="application/pdf", use_container_width=True)

def show_notices():
    warning = st.session_state.pop("archive_warning", None)
    if warning:
        st.warning(f"Error loading invoices: {warning}")
    flash = st.session_state.pop("flash", None)
    if flash:
        kind, msg = flash
        (st.success if kind == "success" else st.error)(msg)
    export = st.session_state.get("last_export")
    if export:
        filename, png = export
        st.download_button("Save invoice image", data=png, file_name=filename, mime="image/png",
                           on_click=lambda: st.session_state.pop("last_export", None))

# ---- Main ----

def main():
    st.set_page_config(page_title=f"{ApplicationConfig.BRAND_NAME} Invoice Generator", layout="centered")
    st.markdown(
        f"<h1 style='text-align:center; margin-bottom:0;'>{ApplicationConfig.BRAND_NAME}</h1>"
        f"<p style='text-align:center; font-size:1.2rem;'>{ApplicationConfig.BRAND_SUBTITLE}</p>",
        unsafe_allow_html=True,
    )

    # Render access page in isolation
    if not st.session_state.get(ApplicationConfig.session_auth_key()):
        pin_login()
        st.stop()

    ensure_session()
    step = st.session_state.current_step
    st.progress(50 if step == 1 else 100, text="Enter Details" if step == 1 else "Preview & Download")
    show_notices()
    saved_invoices_panel()

    if step == 1:
        step1()
    else:
        step2()

if __name__ == "__main__":
    main()
