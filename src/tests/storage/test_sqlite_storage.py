import pytest
from pyaccess.storage import StorageError, TableNotFound
from pyaccess.storage.sqlite import SQLite
from pyaccess.models import AdminUser, PermissionGroup, Role, RolePermission


@pytest.mark.asyncio
async def test_sqlite_crud(tmp_path):
    db_path = str(tmp_path / "t.db")
    storage = SQLite(db_path)

    async with storage.session() as session:
        await session.init_schema(Role)

        # create
        created = await session.create(
            Role(uid="x", permissions=[RolePermission("orders", ["view"])])
        )
        assert created.uid == "x"
        assert created.id is not None

        # get
        got = await session.get(Role, filters={"uid": "x"})
        assert got and got.uid == "x"
        assert got.permissions == [RolePermission("orders", ["view"])]
        assert got.is_active is True

        # list
        lst = await session.list(Role, limit=10)
        assert len(lst) == 1

        # update
        updated = await session.update(
            Role,
            {"uid": "x"},
            {"permissions": [RolePermission("orders", ["view", "edit"])]},
        )
        assert updated.grants("orders", "edit")

        # delete
        assert await session.delete(Role, {"uid": "x"}) == 1
        assert await session.get(Role, filters={"uid": "x"}) is None


@pytest.mark.asyncio
async def test_list_with_filters_and_order(tmp_path):
    storage = SQLite(str(tmp_path / "filters.db"))

    async with storage.session() as session:
        await session.init_schema(Role)

        await session.create(Role(uid="r1", sort_order=3))
        await session.create(Role(uid="r2", sort_order=1, is_system=True))
        await session.create(Role(uid="r3", sort_order=2, is_active=False))

        res = await session.list(Role, filters={"is_active": True})
        assert [r.uid for r in res] == ["r1", "r2"]

        res = await session.list(Role, order_by=["sort_order"])
        assert [r.uid for r in res] == ["r2", "r3", "r1"]

        res = await session.list(Role, order_by=["-is_system", "-sort_order"])
        assert [r.uid for r in res] == ["r2", "r1", "r3"]

        assert await session.count(Role) == 3
        assert await session.count(Role, filters={"is_system": False}) == 2


@pytest.mark.asyncio
async def test_pagination_after_id(tmp_path):
    storage = SQLite(str(tmp_path / "pagination.db"))

    async with storage.session() as session:
        await session.init_schema(AdminUser)

        for i in range(5):
            await session.create(AdminUser(uid=f"p{i}"))

        page1 = await session.list(AdminUser, limit=2)
        assert len(page1) == 2
        page2 = await session.list(AdminUser, limit=2, after_id=page1[-1].id)
        assert [u.uid for u in page2] == ["p2", "p3"]
        page3 = await session.list(AdminUser, limit=2, after_id=page2[-1].id)
        assert [u.uid for u in page3] == ["p4"]


@pytest.mark.asyncio
async def test_unknown_columns_are_rejected(tmp_path):
    storage = SQLite(str(tmp_path / "columns.db"))

    async with storage.session() as session:
        await session.init_schema(AdminUser)
        await session.create(AdminUser(uid="keep"))

        with pytest.raises(ValueError):
            await session.delete(AdminUser, {"nmae": "typo"})
        with pytest.raises(ValueError):
            await session.list(AdminUser, order_by=["-nmae"])
        with pytest.raises(ValueError):
            await session.get(AdminUser)

        assert await session.count(AdminUser) == 1


@pytest.mark.asyncio
async def test_json_dict_column(tmp_path):
    storage = SQLite(str(tmp_path / "json.db"))

    async with storage.session() as session:
        await session.init_schema(PermissionGroup)
        await session.create(
            PermissionGroup(code="g", grants={"orders:view": "ALLOW"})
        )
        got = await session.get(PermissionGroup, filters={"code": "g"})
        assert got.grants == {"orders:view": "ALLOW"}
        assert got.is_system_default is False


@pytest.mark.asyncio
async def test_missing_table(tmp_path):
    storage = SQLite(str(tmp_path / "empty.db"))

    async with storage.session() as session:
        with pytest.raises(TableNotFound):
            await session.get(Role, filters={"uid": "x"})


@pytest.mark.asyncio
async def test_begin_rolls_back_on_error(tmp_path):
    storage = SQLite(str(tmp_path / "tx.db"))

    async with storage.session() as session:
        await session.init_schema(AdminUser)

    with pytest.raises(StorageError):
        async with storage.begin() as session:
            await session.create(AdminUser(uid="dup"))
            await session.create(AdminUser(uid="dup"))

    async with storage.begin() as session:
        await session.create(AdminUser(uid="kept"))

    async with storage.session() as session:
        assert await session.get(AdminUser, filters={"uid": "dup"}) is None
        assert await session.get(AdminUser, filters={"uid": "kept"}) is not None


@pytest.mark.asyncio
async def test_begin_rolls_back_updates_and_deletes(tmp_path):
    storage = SQLite(str(tmp_path / "tx.db"))

    async with storage.session() as session:
        await session.init_schema(AdminUser)
        await session.create(AdminUser(uid="a", name="before"))
        await session.create(AdminUser(uid="b", name="other"))

    with pytest.raises(StorageError):
        async with storage.begin() as session:
            await session.update(
                AdminUser, filters={"uid": "a"}, updates={"name": "after"}
            )
            await session.delete(AdminUser, filters={"uid": "b"})
            await session.create(AdminUser(uid="a"))

    async with storage.session() as session:
        assert (await session.get(AdminUser, filters={"uid": "a"})).name == "before"
        assert await session.get(AdminUser, filters={"uid": "b"}) is not None


@pytest.mark.asyncio
async def test_writes_outside_begin_commit_immediately(tmp_path):
    storage = SQLite(str(tmp_path / "auto.db"))

    async with storage.session() as session:
        await session.init_schema(AdminUser)
        await session.create(AdminUser(uid="a", name="first"))
        await session.create(AdminUser(uid="b"))
        await session.update(AdminUser, filters={"uid": "a"}, updates={"name": "second"})
        await session.delete(AdminUser, filters={"uid": "b"})

    async with storage.session() as session:
        assert (await session.get(AdminUser, filters={"uid": "a"})).name == "second"
        assert await session.get(AdminUser, filters={"uid": "b"}) is None


@pytest.mark.asyncio
async def test_init_index_is_idempotent(tmp_path):
    storage = SQLite(str(tmp_path / "idx.db"))
    table = AdminUser.table_name()

    async with storage.session() as session:
        await session.init_schema(AdminUser)
        await session.init_index(table, ["name"])
        await session.init_index(table, ["name"])
        async with session.connection.execute(
            "SELECT name FROM sqlite_master WHERE type = 'index'"
        ) as cursor:
            names = {row[0] for row in await cursor.fetchall()}

    assert f"{table}_name_idx" in names
