# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Family-tree endpoints – trees, members, relationships and the public reads.

Security invariants enforced by every handler
---------------------------------------------
* Owner endpoints require a session (``get_current_user``) and load the tree
  through ``_own_tree``, which answers 404 both for a missing tree and for
  someone else's tree.
* The public reads need no session and answer 404 for a missing tree and for
  a private one alike, so the existence of private trees is not leaked.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import func, or_, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import get_db
from core import audit
from core.audit import AuditAction, TargetType
from core.errors import endpoint_guard
from core.security import get_client_ip, get_current_user
from models.family_tree import FamilyTree, Member, Relationship
from models.user import User
from auth.schemas import SuccessResponse, UserSummary
from trees.schemas import (
    MemberCreate,
    MemberRef,
    MemberResponse,
    RelationshipCreate,
    RelationshipResponse,
    RelationshipUpdate,
    SharedTreeResponse,
    TreeCounts,
    TreeCreate,
    TreeDetailResponse,
    TreeOwner,
    TreeResponse,
    TreeSummary,
    TreeUpdate,
)

router = APIRouter(prefix="/family-trees", tags=["family-trees"])
public_router = APIRouter(prefix="/public", tags=["public"])

_TREE_NOT_FOUND = "Family tree not found"
_PUBLIC_NOT_FOUND = "Family tree not found or not public"

# ---------------------------------------------------------------------------
# Lookup helpers
# ---------------------------------------------------------------------------


def _own_tree(tree_id: int, user_id: int, db: Session) -> FamilyTree:
    """Load a tree owned by *user_id*.  404 otherwise, never 403."""
    tree = (
        db.query(FamilyTree)
        .filter(FamilyTree.id == tree_id, FamilyTree.user_id == user_id)
        .first()
    )
    if not tree:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_TREE_NOT_FOUND)
    return tree


def _tree_member(tree_id: int, member_id: int, db: Session) -> Member:
    member = (
        db.query(Member)
        .filter(Member.id == member_id, Member.family_tree_id == tree_id)
        .first()
    )
    if not member:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Member not found in this family tree",
        )
    return member


def _tree_relationship(tree_id: int, relationship_id: int, db: Session) -> Relationship:
    rel = (
        db.query(Relationship)
        .filter(Relationship.id == relationship_id, Relationship.family_tree_id == tree_id)
        .first()
    )
    if not rel:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Relationship not found")
    return rel


def _member_label(member: Optional[Member]) -> str:
    return member.full_name if member else "unknown member"


# ---------------------------------------------------------------------------
# Tree assembly
# ---------------------------------------------------------------------------


def _relationship_rows(tree_id: int, db: Session) -> list[RelationshipResponse]:
    """Every relationship of the tree, with both ends resolved from one
    member query."""
    members = {
        m.id: m
        for m in db.query(Member).filter(Member.family_tree_id == tree_id).all()
    }
    rels = (
        db.query(Relationship)
        .filter(Relationship.family_tree_id == tree_id)
        .order_by(Relationship.id)
        .all()
    )
    result = []
    for rel in rels:
        m1 = members.get(rel.member1_id)
        m2 = members.get(rel.member2_id)
        result.append(RelationshipResponse(
            id=rel.id,
            member1_id=rel.member1_id,
            member2_id=rel.member2_id,
            relationship_type=rel.relationship_type,
            member1=MemberRef.model_validate(m1) if m1 else None,
            member2=MemberRef.model_validate(m2) if m2 else None,
        ))
    return result


def _assemble_tree(tree: FamilyTree, db: Session) -> dict:
    """Tree fields plus its members and relationships."""
    members = (
        db.query(Member)
        .filter(Member.family_tree_id == tree.id)
        .order_by(Member.id)
        .all()
    )
    data = TreeResponse.model_validate(tree).model_dump()
    data["members"] = [MemberResponse.model_validate(m) for m in members]
    data["relationships"] = _relationship_rows(tree.id, db)
    return data


# ---------------------------------------------------------------------------
# Relationship rules
# ---------------------------------------------------------------------------


def _check_relationship(
    db: Session,
    tree_id: int,
    member1: Member,
    member2: Member,
    relationship_type: str,
    exclude_id: Optional[int] = None,
) -> None:
    """
    Reject duplicates (in either direction) and a second spouse for either
    member.  *exclude_id* skips the relationship being updated.
    """
    q = db.query(Relationship).filter(Relationship.family_tree_id == tree_id)
    if exclude_id is not None:
        q = q.filter(Relationship.id != exclude_id)

    duplicate = q.filter(
        Relationship.relationship_type == relationship_type,
        or_(
            and_(Relationship.member1_id == member1.id, Relationship.member2_id == member2.id),
            and_(Relationship.member1_id == member2.id, Relationship.member2_id == member1.id),
        ),
    ).first()
    if duplicate:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="This relationship already exists",
        )

    if relationship_type != "spouse":
        return
    for member in (member1, member2):
        has_spouse = q.filter(
            Relationship.relationship_type == "spouse",
            or_(Relationship.member1_id == member.id, Relationship.member2_id == member.id),
        ).first()
        if has_spouse:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"{member.full_name} already has a spouse relationship",
            )


# ---------------------------------------------------------------------------
# GET /family-trees  – list the current user's trees
# ---------------------------------------------------------------------------


@router.get("", response_model=list[TreeSummary])
def list_trees(
    current_user: UserSummary = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Return the caller's trees, most recently updated first, with counts."""
    with endpoint_guard("Failed to fetch family trees"):
        trees = (
            db.query(FamilyTree)
            .filter(FamilyTree.user_id == current_user.id)
            .order_by(FamilyTree.updated_at.desc(), FamilyTree.id.desc())
            .all()
        )
        tree_ids = [t.id for t in trees]
        member_counts = dict(
            db.query(Member.family_tree_id, func.count(Member.id))
            .filter(Member.family_tree_id.in_(tree_ids))
            .group_by(Member.family_tree_id)
            .all()
        ) if tree_ids else {}
        rel_counts = dict(
            db.query(Relationship.family_tree_id, func.count(Relationship.id))
            .filter(Relationship.family_tree_id.in_(tree_ids))
            .group_by(Relationship.family_tree_id)
            .all()
        ) if tree_ids else {}

        return [
            TreeSummary(
                **TreeResponse.model_validate(t).model_dump(),
                counts=TreeCounts(
                    members=member_counts.get(t.id, 0),
                    relationships=rel_counts.get(t.id, 0),
                ),
            )
            for t in trees
        ]


# ---------------------------------------------------------------------------
# POST /family-trees  – create a tree
# ---------------------------------------------------------------------------


@router.post("", response_model=TreeResponse, status_code=status.HTTP_201_CREATED)
def create_tree(
    body: TreeCreate,
    request: Request,
    current_user: UserSummary = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with endpoint_guard("Failed to create family tree"):
        tree = FamilyTree(
            user_id=current_user.id,
            name=body.name,
            description=body.description,
            is_public=body.is_public,
        )
        db.add(tree)
        db.flush()  # get tree.id before commit
        audit.record(
            db, current_user.id, AuditAction.FAMILY_TREE_CREATED, TargetType.FAMILY_TREE, tree.id,
            request_ip=get_client_ip(request),
        )
        db.commit()
        db.refresh(tree)
        return tree


# ---------------------------------------------------------------------------
# GET /family-trees/{id}  – owner's full view
# ---------------------------------------------------------------------------


@router.get("/{tree_id}", response_model=TreeDetailResponse)
def get_tree(
    tree_id: int,
    current_user: UserSummary = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with endpoint_guard("Failed to fetch family tree"):
        tree = _own_tree(tree_id, current_user.id, db)
        return _assemble_tree(tree, db)


# ---------------------------------------------------------------------------
# PUT /family-trees/{id}  – rename / describe / publish
# ---------------------------------------------------------------------------


@router.put("/{tree_id}", response_model=TreeResponse)
def update_tree(
    tree_id: int,
    body: TreeUpdate,
    request: Request,
    current_user: UserSummary = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Apply only the fields present in the request body."""
    with endpoint_guard("Failed to update family tree"):
        tree = _own_tree(tree_id, current_user.id, db)
        changes = body.model_dump(exclude_unset=True)
        for field, value in changes.items():
            # name and is_public are NOT NULL; an explicit null leaves them as is
            if value is None and field in ("name", "is_public"):
                continue
            setattr(tree, field, value)

        audit.record(
            db, current_user.id, AuditAction.FAMILY_TREE_UPDATED, TargetType.FAMILY_TREE, tree.id,
            details={"fields": sorted(changes)},
            request_ip=get_client_ip(request),
        )
        db.commit()
        db.refresh(tree)
        return tree


# ---------------------------------------------------------------------------
# DELETE /family-trees/{id}  – delete a tree with its members and links
# ---------------------------------------------------------------------------


@router.delete("/{tree_id}", response_model=SuccessResponse)
def delete_tree(
    tree_id: int,
    request: Request,
    current_user: UserSummary = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with endpoint_guard("Failed to delete family tree"):
        tree = _own_tree(tree_id, current_user.id, db)
        db.query(Relationship).filter(Relationship.family_tree_id == tree.id).delete()
        db.query(Member).filter(Member.family_tree_id == tree.id).delete()
        db.delete(tree)
        audit.record(
            db, current_user.id, AuditAction.FAMILY_TREE_DELETED, TargetType.FAMILY_TREE, tree_id,
            request_ip=get_client_ip(request),
        )
        db.commit()
        return SuccessResponse(success=True)


# ---------------------------------------------------------------------------
# POST /family-trees/{id}/members  – add a member
# ---------------------------------------------------------------------------


@router.post("/{tree_id}/members", response_model=MemberResponse, status_code=status.HTTP_201_CREATED)
def create_member(
    tree_id: int,
    body: MemberCreate,
    request: Request,
    current_user: UserSummary = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with endpoint_guard("Failed to create member"):
        tree = _own_tree(tree_id, current_user.id, db)
        member = Member(family_tree_id=tree.id, **body.model_dump())
        db.add(member)
        db.flush()
        audit.record(
            db, current_user.id, AuditAction.MEMBER_CREATED, TargetType.MEMBER, member.id,
            details={"familyTreeId": tree.id},
            request_ip=get_client_ip(request),
        )
        db.commit()
        db.refresh(member)
        return member


# ---------------------------------------------------------------------------
# PUT /family-trees/{id}/members/{member_id}  – replace a member's fields
# ---------------------------------------------------------------------------


@router.put("/{tree_id}/members/{member_id}", response_model=MemberResponse)
def update_member(
    tree_id: int,
    member_id: int,
    body: MemberCreate,
    request: Request,
    current_user: UserSummary = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with endpoint_guard("Failed to update member"):
        tree = _own_tree(tree_id, current_user.id, db)
        member = _tree_member(tree.id, member_id, db)
        for field, value in body.model_dump().items():
            setattr(member, field, value)
        audit.record(
            db, current_user.id, AuditAction.MEMBER_UPDATED, TargetType.MEMBER, member.id,
            details={"familyTreeId": tree.id},
            request_ip=get_client_ip(request),
        )
        db.commit()
        db.refresh(member)
        return member


# ---------------------------------------------------------------------------
# DELETE /family-trees/{id}/members/{member_id}
# ---------------------------------------------------------------------------


@router.delete("/{tree_id}/members/{member_id}", response_model=SuccessResponse)
def delete_member(
    tree_id: int,
    member_id: int,
    request: Request,
    current_user: UserSummary = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Delete a member together with every relationship that references it."""
    with endpoint_guard("Failed to delete member"):
        tree = _own_tree(tree_id, current_user.id, db)
        member = _tree_member(tree.id, member_id, db)
        name = member.full_name
        db.query(Relationship).filter(
            Relationship.family_tree_id == tree.id,
            or_(Relationship.member1_id == member.id, Relationship.member2_id == member.id),
        ).delete(synchronize_session=False)
        db.delete(member)
        audit.record(
            db, current_user.id, AuditAction.MEMBER_DELETED, TargetType.MEMBER, member_id,
            details={"familyTreeId": tree.id, "name": name},
            request_ip=get_client_ip(request),
        )
        db.commit()
        return SuccessResponse(success=True)


# ---------------------------------------------------------------------------
# GET /family-trees/{id}/relationships
# ---------------------------------------------------------------------------


@router.get("/{tree_id}/relationships", response_model=list[RelationshipResponse])
def list_relationships(
    tree_id: int,
    current_user: UserSummary = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with endpoint_guard("Failed to fetch relationships"):
        tree = _own_tree(tree_id, current_user.id, db)
        return _relationship_rows(tree.id, db)


# ---------------------------------------------------------------------------
# POST /family-trees/{id}/relationships
# ---------------------------------------------------------------------------


@router.post(
    "/{tree_id}/relationships",
    response_model=RelationshipResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_relationship(
    tree_id: int,
    body: RelationshipCreate,
    request: Request,
    current_user: UserSummary = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with endpoint_guard("Failed to create relationship"):
        tree = _own_tree(tree_id, current_user.id, db)
        if body.member1_id == body.member2_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="A member cannot be related to themselves",
            )

        member1 = db.query(Member).filter(
            Member.id == body.member1_id, Member.family_tree_id == tree.id
        ).first()
        member2 = db.query(Member).filter(
            Member.id == body.member2_id, Member.family_tree_id == tree.id
        ).first()
        if not member1 or not member2:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="One or both members not found",
            )

        _check_relationship(db, tree.id, member1, member2, body.relationship_type)

        rel = Relationship(
            family_tree_id=tree.id,
            member1_id=member1.id,
            member2_id=member2.id,
            relationship_type=body.relationship_type,
        )
        db.add(rel)
        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="This relationship already exists",
            )

        audit.record(
            db, current_user.id, AuditAction.RELATIONSHIP_CREATED, TargetType.RELATIONSHIP, rel.id,
            details=f"Created {rel.relationship_type} relationship between "
                    f"{member1.full_name} and {member2.full_name}",
            request_ip=get_client_ip(request),
        )
        db.commit()

        return RelationshipResponse(
            id=rel.id,
            member1_id=member1.id,
            member2_id=member2.id,
            relationship_type=rel.relationship_type,
            member1=MemberRef.model_validate(member1),
            member2=MemberRef.model_validate(member2),
        )


# ---------------------------------------------------------------------------
# PUT /family-trees/{id}/relationships/{relationship_id}
# ---------------------------------------------------------------------------


@router.put("/{tree_id}/relationships/{relationship_id}", response_model=RelationshipResponse)
def update_relationship(
    tree_id: int,
    relationship_id: int,
    body: RelationshipUpdate,
    request: Request,
    current_user: UserSummary = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Change the type of an existing relationship."""
    with endpoint_guard("Failed to update relationship"):
        tree = _own_tree(tree_id, current_user.id, db)
        rel = _tree_relationship(tree.id, relationship_id, db)
        member1 = db.query(Member).filter(Member.id == rel.member1_id).first()
        member2 = db.query(Member).filter(Member.id == rel.member2_id).first()

        if member1 and member2:
            _check_relationship(
                db, tree.id, member1, member2, body.relationship_type, exclude_id=rel.id
            )

        rel.relationship_type = body.relationship_type
        audit.record(
            db, current_user.id, AuditAction.RELATIONSHIP_UPDATED, TargetType.RELATIONSHIP, rel.id,
            details=f"Updated relationship between {_member_label(member1)} and "
                    f"{_member_label(member2)} to {body.relationship_type}",
            request_ip=get_client_ip(request),
        )
        db.commit()

        return RelationshipResponse(
            id=rel.id,
            member1_id=rel.member1_id,
            member2_id=rel.member2_id,
            relationship_type=rel.relationship_type,
            member1=MemberRef.model_validate(member1) if member1 else None,
            member2=MemberRef.model_validate(member2) if member2 else None,
        )


# ---------------------------------------------------------------------------
# DELETE /family-trees/{id}/relationships/{relationship_id}
# ---------------------------------------------------------------------------


@router.delete("/{tree_id}/relationships/{relationship_id}", response_model=SuccessResponse)
def delete_relationship(
    tree_id: int,
    relationship_id: int,
    request: Request,
    current_user: UserSummary = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with endpoint_guard("Failed to delete relationship"):
        tree = _own_tree(tree_id, current_user.id, db)
        rel = _tree_relationship(tree.id, relationship_id, db)
        member1 = db.query(Member).filter(Member.id == rel.member1_id).first()
        member2 = db.query(Member).filter(Member.id == rel.member2_id).first()
        detail = (
            f"Deleted {rel.relationship_type} relationship between "
            f"{_member_label(member1)} and {_member_label(member2)}"
        )
        db.delete(rel)
        audit.record(
            db, current_user.id, AuditAction.RELATIONSHIP_DELETED, TargetType.RELATIONSHIP,
            relationship_id, details=detail, request_ip=get_client_ip(request),
        )
        db.commit()
        return SuccessResponse(success=True)


# ---------------------------------------------------------------------------
# GET /family-trees/{id}/public  – anonymous read of a public tree
# ---------------------------------------------------------------------------


@router.get("/{tree_id}/public", response_model=TreeDetailResponse)
def get_public_tree(tree_id: str, db: Session = Depends(get_db)):
    """
    Nodes and edges of a public tree.  A private tree answers exactly like
    a missing one, and so does an id that is not a tree id at all.
    """
    with endpoint_guard("Failed to fetch family tree"):
        try:
            key = int(tree_id)
        except ValueError:
            key = None
        # Ids are positive and fit a BIGINT
        if key is None or not 0 < key < 2 ** 63:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_PUBLIC_NOT_FOUND)

        tree = (
            db.query(FamilyTree)
            .filter(FamilyTree.id == key, FamilyTree.is_public.is_(True))
            .first()
        )
        if not tree:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_PUBLIC_NOT_FOUND)
        return _assemble_tree(tree, db)


# ---------------------------------------------------------------------------
# GET /public/family-trees/{share_link}  – read by share link
# ---------------------------------------------------------------------------


@public_router.get("/family-trees/{share_link}", response_model=SharedTreeResponse)
def get_shared_tree(share_link: str, db: Session = Depends(get_db)):
    """Like the public read by id, plus the owner's display name."""
    with endpoint_guard("Failed to fetch family tree"):
        tree = (
            db.query(FamilyTree)
            .filter(FamilyTree.share_link == share_link, FamilyTree.is_public.is_(True))
            .first()
        )
        if not tree:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_PUBLIC_NOT_FOUND)

        owner = db.query(User.display_name).filter(User.id == tree.user_id).first()
        data = _assemble_tree(tree, db)
        data["owner"] = TreeOwner(display_name=owner.display_name if owner else "Unknown")
        return data
