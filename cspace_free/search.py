"""
Solving the per-plane certificate programs on a bounded pool of threads.

Tasks are dispatched in index order, at most num_threads at a time. The
dispatcher blocks until some in-flight task completes, records its result,
and refills the pool. With terminate_at_failure, the first failure observed
stops further dispatch; tasks already running are waited for and recorded.
"""
import concurrent.futures
import logging
import os

from .options import FindSeparationCertificateGivenPolytopeOptions

logger = logging.getLogger(__name__)


def solve_in_parallel(num_tasks, task, num_threads=-1, terminate_at_failure=True,
                      verbose=False):
    """
    Run task(i) for i in range(num_tasks); task returns None on failure.

    Returns (results, is_success). is_success[i] is None for a task that was
    never dispatched. An exception raised by a task propagates.
    """
    if num_threads <= 0:
        num_threads = os.cpu_count() or 1
    results = [None] * num_tasks
    is_success = [None] * num_tasks
    active = {}
    next_task = 0
    stop_dispatching = False
    with concurrent.futures.ThreadPoolExecutor(max_workers=num_threads) as executor:
        while True:
            while (not stop_dispatching and next_task < num_tasks
                   and len(active) < num_threads):
                active[executor.submit(task, next_task)] = next_task
                if verbose:
                    logger.debug("SOS task %d/%d dispatched", next_task, num_tasks)
                next_task += 1
            if not active:
                break
            done, _ = concurrent.futures.wait(
                active, return_when=concurrent.futures.FIRST_COMPLETED)
            for future in done:
                i = active.pop(future)
                results[i] = future.result()
                is_success[i] = results[i] is not None
                if verbose:
                    logger.debug("SOS task %d/%d completed, is_success %s",
                                 i, num_tasks, is_success[i])
                if not is_success[i] and terminate_at_failure:
                    stop_dispatching = True
    return results, is_success


def find_separation_certificate_given_polytope(cspace, C, d, ignored_collision_pairs=frozenset(),
                                               options=None):
    """
    Certify every non-ignored plane for the polytope C·s ≤ d.

    Returns a list with one entry per active plane (in plane order): the
    SeparationCertificateResult, or None where the certificate was not found
    or never attempted.
    """
    options = options or FindSeparationCertificateGivenPolytopeOptions()
    d_minus_Cs = cspace.calc_d_minus_Cs(C, d)
    # The bound rows are always pruned; face rows only when asked.
    C_redundant, s_lower_redundant, s_upper_redundant = cspace.find_redundant_inequalities(C, d)
    if not options.ignore_redundant_C:
        C_redundant = set()
    active_planes = cspace.active_plane_indices(ignored_collision_pairs)

    def solve_small_sos(plane_count):
        plane_index = active_planes[plane_count]
        program = cspace.construct_plane_search_program(
            cspace.plane_geometries[plane_index], d_minus_Cs, C_redundant,
            s_lower_redundant, s_upper_redundant)
        return cspace.solve_separation_certificate_program(program, options)

    results, is_success = solve_in_parallel(
        len(active_planes), solve_small_sos, options.num_threads,
        options.terminate_at_failure, options.verbose)

    if options.verbose:
        if all(is_success):
            logger.debug("Found Lagrangian multipliers and separating planes")
        else:
            # Planes never dispatched after an early stop have is_success None.
            bad_pairs = [cspace.plane_name(active_planes[i])
                         for i, success in enumerate(is_success) if success is False]
            logger.warning(
                "Cannot find Lagrangian multipliers and separating planes for\n%s",
                "\n".join(bad_pairs))
    return results


def certify_polytope(cspace, C, d, ignored_collision_pairs=frozenset(), options=None):
    """Returns (success, {geometry pair: SeparationCertificateResult})."""
    results = find_separation_certificate_given_polytope(
        cspace, C, d, ignored_collision_pairs, options)
    certificates = {}
    success = True
    for result in results:
        if result is None:
            success = False
        else:
            pair = cspace.separating_planes[result.plane_index].geometry_pair
            certificates[pair] = result
    return success, certificates

