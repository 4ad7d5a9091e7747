"""VersionControl backed by GitHub's Git Data API.

Integration never needs a local clone. The squashed commit is created from the
head commit's tree, or from the tree of a server-side merge when the target has
moved on, with the target tip as parent. The branch is then moved with a
non-forced ref update, which GitHub only accepts as a fast-forward.
"""

from __future__ import annotations

import logging

from github import GithubException, InputGitAuthor

from prflow_core.capabilities import VersionControl
from prflow_core.errors import ConflictError
from prflow_core.gh.errors import translate_errors

logger = logging.getLogger(__name__)

_SCRATCH_PREFIX = "prflow/merge-"


class GitHubVersionControl(VersionControl):
    def __init__(self, repo):
        self._repo = repo

    @translate_errors
    def resolve(self, ref: str) -> str:
        return self._repo.get_git_ref(f"heads/{ref}").object.sha

    @translate_errors
    def tree_of(self, commit_hash: str) -> str:
        return self._repo.get_git_commit(commit_hash).tree.sha

    @translate_errors
    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        if ancestor == descendant:
            return True
        # "ahead": descendant has commits ancestor lacks and none the other way.
        return self._repo.compare(ancestor, descendant).status in ("ahead", "identical")

    @translate_errors
    def merge_tree(self, target_hash: str, head_hash: str) -> str:
        # The merges API only merges into a branch, so merge into a scratch one.
        branch = f"{_SCRATCH_PREFIX}{head_hash[:12]}"
        scratch = self._scratch_ref(branch, target_hash)
        try:
            try:
                merged = self._repo.merge(branch, head_hash, f"Merge {head_hash[:12]} into {target_hash[:12]}")
            except GithubException as e:
                # 409 "Merge conflict"
                if e.status == 409:
                    raise ConflictError(f"{head_hash} does not merge cleanly into {target_hash}") from e
                raise
            if merged is None:
                # 204: the head is already contained in the target.
                return self.tree_of(target_hash)
            logger.debug("Merged %s into %s on %s", head_hash, target_hash, branch)
            return merged.commit.tree.sha
        finally:
            scratch.delete()

    def _scratch_ref(self, branch: str, sha: str):
        try:
            return self._repo.create_git_ref(f"refs/heads/{branch}", sha)
        except GithubException as e:
            # 422 "Reference already exists": left over from an interrupted cycle.
            if e.status != 422:
                raise
        ref = self._repo.get_git_ref(f"heads/{branch}")
        ref.edit(sha, force=True)
        return ref

    @translate_errors
    def find_landed(self, target_hash: str, head_hash: str, message: str) -> str | None:
        if target_hash == head_hash:
            return None
        head_tree = self.tree_of(head_hash)
        wanted = message.strip()
        # Commits reachable from the target tip but not from the head.
        for commit in self._repo.compare(head_hash, target_hash).commits:
            git_commit = commit.commit
            if git_commit.tree.sha == head_tree or git_commit.message.strip() == wanted:
                return commit.sha
        return None

    @translate_errors
    def commit(self, tree_hash: str, parent: str, message: str, author_name: str, author_email: str) -> str:
        tree = self._repo.get_git_tree(tree_hash)
        parent_commit = self._repo.get_git_commit(parent)
        created = self._repo.create_git_commit(
            message,
            tree,
            [parent_commit],
            author=InputGitAuthor(author_name, author_email),
        )
        logger.debug("Created commit %s on top of %s", created.sha, parent)
        return created.sha

    @translate_errors
    def push(self, source_hash: str, target_ref: str, expected_target_hash: str) -> str:
        ref = self._repo.get_git_ref(f"heads/{target_ref}")
        if ref.object.sha != expected_target_hash:
            raise ConflictError(f"{target_ref} is at {ref.object.sha}, expected {expected_target_hash}")
        try:
            ref.edit(source_hash, force=False)
        except GithubException as e:
            # 422 "Update is not a fast forward": the branch moved after we looked.
            if e.status == 422:
                raise ConflictError(f"{target_ref} moved while pushing {source_hash}") from e
            raise
        return source_hash
