"""Organization ownership checks for ids referenced by estimates and invoices."""
from app.exceptions import ValidationError
from app.models import Client, Project, CostCode, Estimate


def validate_references(session, organization_id: int, client_id=None, project_id=None,
                        cost_code_ids=(), estimate_id=None):
    """
    Make sure every referenced client, project, cost code and source estimate
    belongs to the organization.

    Raises:
        ValidationError: naming the first offending field.
    """
    if client_id is not None:
        exists = session.query(Client.id).filter(
            Client.id == client_id,
            Client.organization_id == organization_id
        ).first()
        if not exists:
            raise ValidationError(f'Client {client_id} not found in this organization', field='client_id')

    if project_id is not None:
        exists = session.query(Project.id).filter(
            Project.id == project_id,
            Project.organization_id == organization_id
        ).first()
        if not exists:
            raise ValidationError(f'Project {project_id} not found in this organization', field='project_id')

    wanted = {cid for cid in cost_code_ids if cid is not None}
    if wanted:
        found = {
            row.id for row in session.query(CostCode.id).filter(
                CostCode.id.in_(wanted),
                CostCode.organization_id == organization_id
            ).all()
        }
        missing = sorted(wanted - found)
        if missing:
            raise ValidationError(f'Cost code {missing[0]} not found in this organization', field='cost_code_id')

    if estimate_id is not None:
        exists = session.query(Estimate.id).filter(
            Estimate.id == estimate_id,
            Estimate.organization_id == organization_id
        ).first()
        if not exists:
            raise ValidationError(f'Estimate {estimate_id} not found in this organization', field='source_estimate_id')
