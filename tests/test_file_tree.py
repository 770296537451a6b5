from popup_store.services.file_tree import (
    DirectoryNode,
    FileNode,
    build_file_tree,
    first_file_path,
    is_image_file,
    iter_tree_files,
    tree_to_dict,
)


def _leaf_paths(node: DirectoryNode, prefix: str = "") -> list[str]:
    paths: list[str] = []
    for name, child in node.children.items():
        full = f"{prefix}/{name}" if prefix else name
        if isinstance(child, DirectoryNode):
            paths.extend(_leaf_paths(child, full))
        else:
            paths.append(full)
    return paths


def test_build_file_tree_empty_list_returns_empty_root():
    tree = build_file_tree([])
    assert isinstance(tree, DirectoryNode)
    assert tree.children == {}
    assert build_file_tree(None).children == {}


def test_build_file_tree_reconstructs_leaf_paths_and_directories():
    files = [
        {"path": "app/page.tsx", "content": "page", "lang": "tsx"},
        {"path": "app/components/ui/button.tsx", "content": "button"},
        {"path": "README.md", "content": "readme"},
    ]

    tree = build_file_tree(files)

    assert sorted(_leaf_paths(tree)) == sorted(f["path"] for f in files)
    app_dir = tree.children["app"]
    assert isinstance(app_dir, DirectoryNode)
    assert isinstance(app_dir.children["components"], DirectoryNode)
    assert isinstance(app_dir.children["components"].children["ui"], DirectoryNode)


def test_build_file_tree_later_record_wins_for_duplicate_path():
    tree = build_file_tree(
        [
            {"path": "app/page.tsx", "content": "first"},
            {"path": "app/page.tsx", "content": "second"},
        ]
    )

    leaf = tree.children["app"].children["page.tsx"]
    assert isinstance(leaf, FileNode)
    assert leaf.content == "second"
    assert len(tree.children["app"].children) == 1


def test_build_file_tree_accepts_meta_source_shape():
    tree = build_file_tree([{"meta": {"file": "public/logo.svg", "url": "https://blob.test/logo.svg"}, "source": "<svg/>"}])

    leaf = tree.children["public"].children["logo.svg"]
    assert leaf.content == "<svg/>"
    assert leaf.path == "public/logo.svg"
    assert leaf.lang == "text"
    assert leaf.url == "https://blob.test/logo.svg"
    assert leaf.is_image is True


def test_build_file_tree_prefers_path_and_content_over_meta_and_source():
    tree = build_file_tree([{"path": "a.txt", "content": "c", "source": "s", "meta": {"file": "b.txt"}}])
    assert list(tree.children) == ["a.txt"]
    assert tree.children["a.txt"].content == "c"


def test_build_file_tree_skips_malformed_records():
    tree = build_file_tree(
        [
            None,
            "app/page.tsx",
            42,
            {"content": "no path"},
            {"path": ""},
            {"path": 7, "content": "numeric path"},
            {"path": "///", "content": "only separators"},
            {"path": "ok.ts", "content": "kept"},
        ]
    )
    assert _leaf_paths(tree) == ["ok.ts"]


def test_build_file_tree_drops_empty_segments():
    tree = build_file_tree([{"path": "/app//page.tsx/", "content": "x"}])
    assert _leaf_paths(tree) == ["app/page.tsx"]
    assert tree.children["app"].children["page.tsx"].path == "/app//page.tsx/"


def test_build_file_tree_file_then_directory_collision_keeps_later_record():
    tree = build_file_tree(
        [
            {"path": "lib", "content": "file"},
            {"path": "lib/utils.ts", "content": "utils"},
        ]
    )
    assert isinstance(tree.children["lib"], DirectoryNode)
    assert tree.children["lib"].children["utils.ts"].content == "utils"


def test_is_image_file_classifies_by_extension_case_insensitively():
    assert is_image_file("hero.PNG")
    assert is_image_file("photo.jpeg")
    assert is_image_file("icon.svg")
    assert is_image_file("scan.bmp")
    assert not is_image_file("page.tsx")
    assert not is_image_file("png")


def test_iter_tree_files_lists_directories_first_then_names():
    tree = build_file_tree(
        [
            {"path": "b.ts", "content": ""},
            {"path": "Zeta/z.ts", "content": ""},
            {"path": "A.ts", "content": ""},
            {"path": "alpha/a.ts", "content": ""},
        ]
    )
    assert [leaf.path for leaf in iter_tree_files(tree)] == ["alpha/a.ts", "Zeta/z.ts", "A.ts", "b.ts"]


def test_tree_to_dict_renders_nested_json():
    rendered = tree_to_dict(build_file_tree([{"path": "public/hero.png", "content": ""}]))
    assert rendered == {
        "type": "directory",
        "children": {
            "public": {
                "type": "directory",
                "children": {
                    "hero.png": {
                        "type": "file",
                        "content": "",
                        "path": "public/hero.png",
                        "lang": "text",
                        "url": None,
                        "isImage": True,
                    }
                },
            }
        },
    }


def test_first_file_path_skips_unresolvable_records():
    assert first_file_path([{"content": "x"}, {"meta": {"file": "app/page.tsx"}}]) == "app/page.tsx"
    assert first_file_path([]) is None
