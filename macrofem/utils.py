import os

import numpy as onp


def save_as_vtk(mesh, sol_file, cell_infos=None, point_infos=None, t=0):
    """Write a mesh and optional nodal/element data to a VTK (or any meshio) file.

    Args:
        mesh (Mesh): Macro-element mesh; exported through :meth:`Mesh.to_meshio`.
        sol_file (str): Output path; the directory is created if needed.
        cell_infos (list, optional): ``(name, data)`` pairs with one row per
            element. Each element is written as ``(np - 1)**2`` sub-cells that
            all carry the element's value.
        point_infos (list, optional): ``(name, data)`` pairs with one row per node.
        t (int): Time level of the node positions.
    """
    out_mesh = mesh.to_meshio(t)
    if out_mesh.points.shape[1] == 2:
        # VTK stores 3D points
        out_mesh.points = onp.column_stack((out_mesh.points, onp.zeros(len(out_mesh.points))))
    sol_dir = os.path.dirname(sol_file)
    if sol_dir:
        os.makedirs(sol_dir, exist_ok=True)

    n_sub = (mesh.elements[0].nnode_1d - 1) ** 2
    if cell_infos is not None:
        for name, data in cell_infos:
            data = onp.array(data, dtype=onp.float32)
            assert data.shape[0] == mesh.n_element, (
                f"cell data wrong shape, got {data.shape}, expected first dim = {mesh.n_element}"
            )
            if data.ndim == 1:
                data = data.reshape(mesh.n_element, 1)
            else:
                data = data.reshape(mesh.n_element, -1)
            out_mesh.cell_data[name] = [onp.repeat(data, n_sub, axis=0)]

    if point_infos is not None:
        for name, data in point_infos:
            data = onp.array(data, dtype=onp.float32)
            assert data.shape[0] == mesh.n_node, (
                f"point data wrong shape, got {data.shape}, expected first dim = {mesh.n_node}"
            )
            out_mesh.point_data[name] = data

    out_mesh.write(sol_file)
