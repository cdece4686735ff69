from unittest.mock import MagicMock

from inklink.crud.crud_tattoo_request import CRUDTattooRequest
from inklink.models.tattoo_request import TattooRequest
from inklink.schemas.tattoo_request import TattooRequestCreate

from tests.utils.marketplace import create_tattoo_request

# Instantiate the class to test its methods
request_crud = CRUDTattooRequest(TattooRequest)


def test_create_with_client():
    """
    Tests that a new request is stored open and active for its client.
    """
    db_session = MagicMock()
    request_in = TattooRequestCreate(
        title="Fine line rose",
        description="Small rose on the wrist",
        style="fine line",
        size="small",
        placement="wrist",
    )

    result = request_crud.create_with_client(db=db_session, obj_in=request_in, client_id="user_1")

    db_session.add.assert_called_once()
    db_session.commit.assert_called_once()
    db_session.refresh.assert_called_once()
    assert result.client_id == "user_1"
    assert result.status == "open"
    assert result.is_active is True


def test_soft_delete_keeps_row():
    db_session = MagicMock()
    db_obj = TattooRequest(id="req_1", client_id="user_1", is_active=True)

    result = request_crud.soft_delete(db=db_session, db_obj=db_obj)

    assert result.is_active is False
    db_session.commit.assert_called_once()


def test_set_status_if_only_moves_matching_rows(db):
    request = create_tattoo_request(db, client_id="user_1")

    moved = request_crud.set_status_if(
        db, request_id=request.id, from_statuses=["in_progress"], to_status="completed"
    )
    assert moved == 0

    moved = request_crud.set_status_if(
        db, request_id=request.id, from_statuses=["open"], to_status="in_progress"
    )
    db.commit()
    assert moved == 1
    db.refresh(request)
    assert request.status == "in_progress"


def test_get_multi_filtered_hides_inactive_and_matches_style(db):
    visible = create_tattoo_request(db, client_id="user_1", style="Japanese")
    hidden = create_tattoo_request(db, client_id="user_1", style="japanese")
    request_crud.soft_delete(db, db_obj=hidden)
    create_tattoo_request(db, client_id="user_2", style="blackwork")

    results = request_crud.get_multi_filtered(db, style="japan")

    assert [r.id for r in results] == [visible.id]


def test_get_multi_filtered_by_client(db):
    mine = create_tattoo_request(db, client_id="user_1")
    create_tattoo_request(db, client_id="user_2")

    results = request_crud.get_multi_filtered(db, client_id="user_1")

    assert [r.id for r in results] == [mine.id]
