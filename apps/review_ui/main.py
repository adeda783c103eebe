# apps/review_ui/main.py
import os
from datetime import date
from uuid import uuid4

import streamlit as st

# --- 1. Page Config ---
st.set_page_config(layout="wide", page_title="PROFEA Documentación de Obra")

from apps.common.logging_setup import setup_logging
from apps.common.settings import load_settings
from apps.review_ui.adapters import SessionWorkspaceAdapter
from apps.review_ui.domain import (
    CATEGORY_LABELS,
    DocumentEditForm,
    ReviewForm,
    SignatureRequest,
    form_from_document,
    form_from_draft,
)
from services.documents.appointments import ManualAppointmentEntry
from services.documents.collection import is_expired
from services.documents.models import Appointment, DocCategory, FileDocument, Worker, is_signable
from services.documents.periods import fortnight_label, fortnight_options
from services.pipeline import CaptureError, IntakeContext, IntakeError, UploadedFile
from services.preprocessing.normalize import decode_data_uri

setup_logging()
SETTINGS = load_settings()
OFFLINE = os.getenv("PROFEA_OFFLINE", "").lower() in ("1", "true", "yes")
ALL_PERIODS = "Todas"


# --- Helper Functions ---
def get_adapter() -> SessionWorkspaceAdapter:
    # one workspace per browser session
    if "adapter" not in st.session_state:
        st.session_state.adapter = SessionWorkspaceAdapter(SETTINGS, offline=OFFLINE)
    return st.session_state.adapter


def period_options():
    today = date.today()
    start = date(today.year, 1, 1)
    return fortnight_options(start, 24)


def render_review(adapter: SessionWorkspaceAdapter, draft_id: str, periods):
    draft = adapter.draft(draft_id)
    form = form_from_draft(draft)

    col_img, col_data = st.columns([1, 1])
    with col_img:
        st.subheader("Documento")
        st.image(decode_data_uri(draft.archival.data_uri), caption=draft.original_name, width="stretch")

    with col_data:
        st.subheader("Revisión")
        if form.is_valid:
            st.success(form.summary)
        else:
            st.warning(form.summary)

        with st.form(key=f"review_{draft_id}"):
            name = st.text_input("Nombre", value=form.name)
            category = st.selectbox("Categoría", CATEGORY_LABELS, index=CATEGORY_LABELS.index(form.category))
            worker_name = st.text_input("Trabajador", value=form.worker_name)
            expiry = st.date_input("Caducidad", value=form.expiry_date)
            period_choices = [""] + periods
            quincena = st.selectbox(
                "Quincena",
                period_choices,
                index=period_choices.index(form.quincena) if form.quincena in period_choices else 0,
            )

            col_save, col_cancel = st.columns(2)
            saved = col_save.form_submit_button("💾 Guardar", type="primary")
            cancelled = col_cancel.form_submit_button("Cancelar")

        if saved:
            edited = ReviewForm(
                draft_id=draft_id,
                name=name,
                category=category,
                worker_name=worker_name,
                expiry_date=expiry,
                quincena=quincena,
                summary=form.summary,
                is_valid=form.is_valid,
            )
            doc = adapter.save_review(edited)
            st.session_state.pop("draft_id", None)
            st.toast(f"Guardado: {doc.name}", icon="✅")
            st.rerun()
        if cancelled:
            adapter.cancel_review(draft_id)
            st.session_state.pop("draft_id", None)
            st.rerun()


def render_upload(adapter: SessionWorkspaceAdapter, quincena):
    with st.expander("📤 Subir documentos", expanded=True):
        override = st.selectbox("Categoría (opcional)", ["Automática"] + CATEGORY_LABELS)
        worker = st.text_input("Trabajador (opcional)")
        files = st.file_uploader("Fotos", type=["jpg", "jpeg", "png"], accept_multiple_files=True)

        if files and st.button("Procesar", type="primary"):
            ctx = IntakeContext(
                category_override=DocCategory.parse(override),
                worker_override=worker.strip() or None,
                quincena=quincena,
            )
            uploads = [UploadedFile(filename=f.name, content=f.getvalue()) for f in files]
            bar = st.progress(0.0)
            try:
                outcome = adapter.upload(uploads, ctx, on_progress=lambda done, total: bar.progress(done / total))
            except CaptureError:
                st.error("No se pudo leer la imagen.")
                return
            except IntakeError as e:
                st.error(f"Error al generar el PDF: {e}")
                return

            if outcome.needs_review:
                st.session_state.draft_id = outcome.draft.id
                st.rerun()
            st.success(f"{len(outcome.filed)} documentos archivados.")
            for failure in outcome.failures:
                st.error(f"{failure.filename}: {failure.error}")


def render_listing(adapter: SessionWorkspaceAdapter, quincena):
    today = date.today()
    for category, docs in adapter.listing(quincena).items():
        with st.expander(f"{category.value} ({len(docs)})", expanded=bool(docs)):
            for doc in docs:
                col_thumb, col_meta, col_actions = st.columns([1, 4, 2])
                if isinstance(doc, FileDocument):
                    col_thumb.image(decode_data_uri(doc.thumbnail_url))
                else:
                    col_thumb.markdown("📅")

                label = f"**{doc.name}**"
                if doc.is_valid is False:
                    label += " ⚠️"
                col_meta.markdown(label)
                col_meta.caption(doc.summary)
                if doc.expiry_date:
                    if is_expired(doc, today):
                        col_meta.error(f"Caducado: {doc.expiry_date}")
                    else:
                        col_meta.caption(f"Caducidad: {doc.expiry_date}")

                if isinstance(doc, FileDocument):
                    col_actions.download_button(
                        "PDF", adapter.pdf_bytes(doc), file_name=doc.name, mime="application/pdf", key=f"pdf_{doc.id}"
                    )
                if is_signable(doc) and col_actions.button("✍️ Firmar", key=f"sign_{doc.id}"):
                    st.session_state.sign_doc_id = doc.id
                if col_actions.button("🗑️", key=f"del_{doc.id}"):
                    adapter.delete(doc.id)
                    st.rerun()
                render_edit(adapter, doc, col_actions)


def render_edit(adapter: SessionWorkspaceAdapter, doc, container):
    form = form_from_document(doc)
    # expanders cannot nest inside the category expander
    with container.popover("✏️ Editar"):
        with st.form(key=f"edit_{doc.id}"):
            name = st.text_input("Nombre", value=form.name)
            expiry = st.date_input("Caducidad", value=form.expiry_date)
            if st.form_submit_button("Guardar"):
                adapter.edit(DocumentEditForm(doc_id=doc.id, name=name, expiry_date=expiry))
                st.toast(f"Actualizado: {name.strip() or doc.name}", icon="✅")
                st.rerun()


def render_signing(adapter: SessionWorkspaceAdapter, doc_id: str):
    st.subheader("Firmar contrato")
    with st.form(key=f"sign_form_{doc_id}"):
        signature = st.file_uploader("Firma (PNG con transparencia)", type=["png"])
        use_default = st.checkbox("Posición por defecto (abajo a la derecha)", value=True)
        x = st.slider("Posición horizontal", 0.0, 1.0, 0.9)
        y = st.slider("Posición vertical", 0.0, 1.0, 0.95)
        discard = st.checkbox("Eliminar el original sin firmar")
        submitted = st.form_submit_button("Firmar", type="primary")

    if submitted:
        if signature is None:
            st.warning("Falta la firma.")
            return
        request = SignatureRequest(
            doc_id=doc_id,
            signature_png=signature.getvalue(),
            x=x,
            y=y,
            use_default_position=use_default,
            discard_original=discard,
        )
        try:
            signed = adapter.sign(request)
        except IntakeError as e:
            st.error(str(e))
            return
        st.session_state.pop("sign_doc_id", None)
        st.toast(f"Firmado: {signed.name}", icon="✅")
        st.rerun()


def render_checklist(adapter: SessionWorkspaceAdapter):
    report = adapter.checklist()
    st.subheader(f"Subcontratas ({report.satisfied_count}/{report.total_count})")
    for item in report.items:
        matched = item.matched_document_id is not None
        checked = st.checkbox(item.label, value=item.satisfied, disabled=matched, key=f"req_{item.label}")
        if not matched and checked != item.manually_checked:
            adapter.toggle(item.label)
            st.rerun()


def render_reminders(adapter: SessionWorkspaceAdapter, quincena):
    st.subheader("Próximas citas")
    for r in adapter.reminders():
        when = f"{r.date} {r.time or ''}".strip()
        st.markdown(f"**{r.type.value}** · {r.worker} · {when} · {r.location or ''}")

    with st.form("manual_appointment"):
        category = st.selectbox(
            "Tipo", [DocCategory.FORMACION.value, DocCategory.RECONOCIMIENTOS.value]
        )
        name = st.text_input("Trabajador")
        when = st.date_input("Fecha", value=None)
        location = st.text_input("Lugar")
        if st.form_submit_button("Añadir cita"):
            doc = adapter.add_appointment(
                ManualAppointmentEntry(
                    category=DocCategory(category),
                    worker_name=name,
                    date=when.isoformat() if when else "",
                    location=location,
                    quincena=quincena or "",
                )
            )
            if doc is None:
                st.warning("Nombre y fecha son obligatorios.")
            else:
                st.rerun()

    st.subheader("Pendientes")
    for category in (DocCategory.FORMACION, DocCategory.RECONOCIMIENTOS):
        names = ", ".join(w.full_name for w in adapter.pending(category)) or "—"
        st.caption(f"{category.value}: {names}")


def render_workers(adapter: SessionWorkspaceAdapter, quincena):
    with st.form("new_worker"):
        first = st.text_input("Nombre")
        last = st.text_input("Apellidos")
        dni = st.text_input("DNI")
        has_prl = st.checkbox("Tiene PRL 20h")
        prl_date = st.date_input("Cita PRL", value=None)
        med_date = st.date_input("Reconocimiento médico", value=None)
        if st.form_submit_button("Registrar") and first.strip() and last.strip():
            adapter.add_worker(
                Worker(
                    id=uuid4().hex,
                    first_name=first.strip(),
                    last_name=last.strip(),
                    dni=dni.strip(),
                    quincena=quincena or "",
                    has_prl_20h=has_prl,
                    prl_appointment=Appointment(date=prl_date.isoformat()) if prl_date and not has_prl else None,
                    medical_appointment=Appointment(date=med_date.isoformat()) if med_date else None,
                )
            )
            st.rerun()

    for w in adapter.workers():
        col_name, col_del = st.columns([5, 1])
        col_name.markdown(f"{w.full_name} · {w.dni}")
        if col_del.button("🗑️", key=f"worker_{w.id}"):
            adapter.remove_worker(w.id)
            st.rerun()


# --- Main App ---
adapter = get_adapter()
st.title("🏗️ Documentación de Obra")

# Sidebar
st.sidebar.header("Periodo")
periods = period_options()
current = fortnight_label(date.today())
choice = st.sidebar.selectbox(
    "Quincena", [ALL_PERIODS] + periods, index=(periods.index(current) + 1) if current in periods else 0
)
quincena = None if choice == ALL_PERIODS else choice
if OFFLINE:
    st.sidebar.info("Clasificador desactivado: los documentos se archivan con la categoría por defecto.")

if "draft_id" in st.session_state:
    render_review(adapter, st.session_state.draft_id, periods)
    st.stop()

tab_docs, tab_sub, tab_workers = st.tabs(["Documentos", "Subcontratas", "Trabajadores"])
with tab_docs:
    render_upload(adapter, quincena)
    if "sign_doc_id" in st.session_state:
        render_signing(adapter, st.session_state.sign_doc_id)
    render_listing(adapter, quincena)
with tab_sub:
    render_checklist(adapter)
with tab_workers:
    render_reminders(adapter, quincena)
    render_workers(adapter, quincena)
